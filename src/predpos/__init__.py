"""predpos - net share positions from on-chain holdings and complete-set event logs."""

__version__ = "0.1.0"
