"""
Routers module for the Schelling oracle API

This module contains API route handlers.
"""

from schelling_oracle.routers import providers, requests

__all__ = ["providers", "requests"]
