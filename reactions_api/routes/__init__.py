from . import exc_handlers
from .base import app


__all__ = ["app", "exc_handlers"]
