"""Per-server storage scopes."""

from __future__ import annotations

from core.storage.router import ServerScope, StorageRouter

__all__: list[str] = ["ServerScope", "StorageRouter"]
