"""Print-shop order tracking: order ledger and projection engine."""

__version__ = "1.0.0"
