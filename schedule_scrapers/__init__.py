"""Schedule extraction from social media surfaces."""

__version__ = "0.1.0"
