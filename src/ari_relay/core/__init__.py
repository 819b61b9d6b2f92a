"""Core configuration and error types for the ARI relay."""
