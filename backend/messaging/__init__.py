"""DM thread identity, policy, repositories and use cases."""
