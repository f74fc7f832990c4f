"""Storefront session & profile client."""

__version__ = "0.1.0"
