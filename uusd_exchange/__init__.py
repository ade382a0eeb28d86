"""Mint and redeem the Ubiquity dollar against its on-chain collateral pool."""

__version__ = "0.1.0"
