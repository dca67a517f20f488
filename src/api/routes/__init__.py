"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import imports, progress

__all__ = [
    "imports",
    "progress",
]
