"""HTTP API for the Tokenline service."""
