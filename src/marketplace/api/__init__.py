"""Marketplace API package."""

from marketplace.api.routes import order_router

__all__ = ["order_router"]
