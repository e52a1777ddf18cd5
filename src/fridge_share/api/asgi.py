"""ASGI entrypoint for the fridge-share API."""

from fridge_share.api.app import create_app
from fridge_share.containers import build_container

app = create_app(build_container())
