"""HTTP route modules."""

from app.api.routes import recipes

__all__ = ["recipes"]
