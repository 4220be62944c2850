"""VIP Dashboard offline client."""

__version__ = "0.1.0"
