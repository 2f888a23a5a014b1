"""HTTP routes of the local RAG service."""
from __future__ import annotations

from .routes import router

__all__ = ["router"]
