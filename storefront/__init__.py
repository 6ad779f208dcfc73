"""Order checkout and inventory reservation for the storefront API."""

__version__ = "0.1.0"
