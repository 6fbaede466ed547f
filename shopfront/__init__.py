"""Shopfront: catalog, checkout and Stripe settlement backend."""

__version__ = "1.0.0"
