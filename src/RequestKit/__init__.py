"""RequestKit: HTTP request construction and dispatch on top of httpx."""

__version__ = "0.1.0"

__all__ = ["__version__"]
