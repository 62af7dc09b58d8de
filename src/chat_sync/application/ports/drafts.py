from __future__ import annotations

from typing import Protocol


class DraftStorage(Protocol):
    """Synchronous, best-effort local storage. Writes may be silently lost."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, text: str) -> None: ...

    def clear(self, key: str) -> None: ...
