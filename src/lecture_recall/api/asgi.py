"""ASGI entrypoint for the lecture recall server."""

from lecture_recall.api.app import create_app
from lecture_recall.containers import build_container

app = create_app(build_container())
