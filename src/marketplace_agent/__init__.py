"""Marketplace listing agent: photos in, published listing out."""

__version__ = "0.1.0"
