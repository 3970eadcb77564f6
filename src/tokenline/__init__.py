"""Tokenline: ticket issuance and admission control for physical-service queues."""

__version__ = "0.1.0"
