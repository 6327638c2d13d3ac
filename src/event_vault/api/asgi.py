"""ASGI entrypoint for the event vault API."""

from event_vault.api.app import create_app
from event_vault.containers import build_container

app = create_app(build_container())
