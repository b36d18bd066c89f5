"""Core configuration, logging and auth."""
