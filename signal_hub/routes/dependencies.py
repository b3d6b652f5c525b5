"""Shared FastAPI dependencies."""

from fastapi import Request

from signal_hub.realtime.hub import Hub


def get_hub(request: Request) -> Hub:
    """The process-wide hub created in signal_hub.main."""
    return request.app.state.hub
