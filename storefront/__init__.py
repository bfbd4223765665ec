"""Storefront service: cart, checkout and order lifecycle."""
