"""Configuration, platform and error types."""
