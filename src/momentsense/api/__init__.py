"""FastAPI application for moment synthesis."""

from momentsense.api.app import create_app, get_request_identifier

__all__ = ["create_app", "get_request_identifier"]
