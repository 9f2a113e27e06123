"""ASGI entrypoint for the gallery portal API."""

from gallery_portal.api.app import create_app
from gallery_portal.containers import build_container

app = create_app(build_container())
