"""Configuration, security, logging and error types."""
