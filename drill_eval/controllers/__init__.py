"""FastAPI routers acting as controllers in the MVC architecture."""

from . import evaluate

__all__ = ["evaluate"]
