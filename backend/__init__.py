"""LoomRoom backend: identity, messaging policy and social services."""
