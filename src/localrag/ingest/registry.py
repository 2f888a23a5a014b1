"""Persisted Document records, one JSON file per data directory."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from localrag.vectorstore.json_store import atomic_write_text

from .models import Document

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class DocumentRegistry:
    """Thread-safe map of document path to :class:`Document`, saved atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._documents: Dict[str, Document] = {}
        self.root: Optional[str] = None
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if payload.get("schema_version") != SCHEMA_VERSION:
                raise ValueError(f"unsupported schema_version {payload.get('schema_version')!r}")
            documents = {
                path: Document.from_dict(record)
                for path, record in (payload.get("documents") or {}).items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            LOGGER.warning("Document registry %s is unreadable (%s); starting empty", self.path, exc)
            return
        self._documents = documents
        self.root = payload.get("root")
        LOGGER.info("Loaded %s document records from %s", len(documents), self.path)

    def save(self) -> None:
        with self._lock:
            payload = {
                "schema_version": SCHEMA_VERSION,
                "root": self.root,
                "documents": {path: document.to_dict() for path, document in sorted(self._documents.items())},
            }
            atomic_write_text(self.path, json.dumps(payload, indent=2, ensure_ascii=False))

    def get(self, path: str) -> Optional[Document]:
        with self._lock:
            return self._documents.get(path)

    def put(self, document: Document) -> None:
        with self._lock:
            self._documents[document.path] = document

    def remove(self, path: str) -> Optional[Document]:
        with self._lock:
            return self._documents.pop(path, None)

    def paths(self) -> List[str]:
        with self._lock:
            return sorted(self._documents)

    def all(self) -> List[Document]:
        with self._lock:
            return [self._documents[path] for path in sorted(self._documents)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._documents


__all__ = ["DocumentRegistry", "SCHEMA_VERSION"]
