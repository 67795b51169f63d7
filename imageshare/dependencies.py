"""FastAPI dependencies resolving per-app state."""

from fastapi import Request

from imageshare.config import Settings
from imageshare.storage.base import ImageStore


def get_store(request: Request) -> ImageStore:
    """The image store built at startup and attached to the app."""
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
