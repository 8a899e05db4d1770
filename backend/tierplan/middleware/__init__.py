"""Application middleware and integrations."""
