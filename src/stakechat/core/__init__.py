"""Core configuration, error and crypto helpers."""
