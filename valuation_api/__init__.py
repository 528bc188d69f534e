"""
Valuation API Package - HTTP surface for the cycle tracker.
"""

from valuation_api.api import create_app


__all__ = ["create_app"]
