"""
Middleware components for request processing.

This package contains middleware for:
- CORS for the browser chat client
"""

from signal_hub.middleware.cors import CORSMiddleware

__all__ = [
    "CORSMiddleware",
]
