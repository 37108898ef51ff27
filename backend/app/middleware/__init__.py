"""HTTP middleware and integrations."""
