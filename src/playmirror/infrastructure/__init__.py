"""Infrastructure layer: persistence, integrations, observability."""
