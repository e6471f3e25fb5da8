"""HTTP surface of the trade journal built on FastAPI."""

from .application import create_api_application

__all__ = ["create_api_application"]
