"""Schema bootstrap for the strategy game PostgreSQL database."""

__version__ = "0.1.0"
