"""Settings, declaration loading and logging configuration."""
