from __future__ import annotations

import contextlib
import threading
from typing import Hashable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0  # détenteur + threads en attente


class ProductLocks:
    """
    Registre de verrous par produit (in-process).

    Sérialise les read-modify-write d'un même produit entre threads ;
    le FOR UPDATE côté base prend le relais entre processus.
    Une entrée n'existe que tant qu'un thread détient ou attend le verrou.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextlib.contextmanager
    def hold(self, resource_key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(resource_key)
            if entry is None:
                entry = _Entry()
                self._locks[resource_key] = entry
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[resource_key]
