"""P&C insurance financial dashboard core."""

__version__ = "0.3.0"
