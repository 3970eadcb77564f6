"""Core configuration for the Tokenline service."""
