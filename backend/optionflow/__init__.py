"""Options Flow — options chain flow analysis service."""

__version__ = "1.0.0"
