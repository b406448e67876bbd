"""Package version (PEP 440)."""

__version__ = "0.3.0"

__all__ = ["__version__"]
