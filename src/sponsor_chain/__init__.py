"""Agent sponsor-chain and fee-approval workflow."""

__version__ = "0.1.0"
