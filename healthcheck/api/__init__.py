"""Read API over the persisted check results."""

from .server import create_app
