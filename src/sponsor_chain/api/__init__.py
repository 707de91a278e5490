"""HTTP API for the sponsor chain service."""
