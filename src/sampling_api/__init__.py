"""REST API exposing the audit sampling engine."""

from .main import app, create_app
