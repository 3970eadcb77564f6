"""Operational scripts for the Tokenline service."""
