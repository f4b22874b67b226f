"""FastAPI routers acting as controllers in the MVC architecture."""

from . import maintenance, sessions

__all__ = ["maintenance", "sessions"]
