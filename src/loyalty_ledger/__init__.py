"""Point-of-sale loyalty ledger and redemption engine."""

__version__ = "0.1.0"
