"""ASGI entrypoint for the photodoc API."""

from photodoc.api.app import create_app
from photodoc.containers import build_container

app = create_app(build_container())
