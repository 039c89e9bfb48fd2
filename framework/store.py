"""Key-value document store with atomic transactions and push subscriptions."""

from __future__ import annotations

import itertools
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import DocumentNotFoundError, StoreError
from .serialize import copy_document

logger = logging.getLogger(__name__)

Document = dict[str, Any]
SubscriptionCallback = Callable[[Document | None], None]
TransactionFn = Callable[[Document | None], Document | None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of `DocumentStore.transaction`."""

    committed: bool
    value: Document | None


class DocumentStore(ABC):
    """Contract the engine expects from a shared document store.

    Paths are slash-separated (`rooms/ABCD`). Every value handed out is a
    private copy; changing it has no effect until written back.
    """

    @abstractmethod
    def get(self, path: str) -> Document | None:
        """Return the document at `path`, or None."""

    @abstractmethod
    def list(self, collection: str) -> list[tuple[str, Document]]:
        """Return `(key, document)` pairs directly under `collection`."""

    @abstractmethod
    def create(self, path: str, value: Mapping[str, Any]) -> bool:
        """Write `value` only if `path` is empty. Return whether it was written."""

    @abstractmethod
    def set(self, path: str, value: Mapping[str, Any]) -> None:
        """Unconditionally overwrite the document at `path`."""

    @abstractmethod
    def update(self, path: str, fields: Mapping[str, Any]) -> Document:
        """Merge top-level `fields` into an existing document."""

    @abstractmethod
    def transaction(self, path: str, update_fn: TransactionFn) -> TransactionResult:
        """Atomically replace the document with `update_fn(current)`.

        `update_fn` receives a copy of the current value (None when absent).
        Returning None aborts without writing. Exceptions raised by
        `update_fn` propagate and nothing is written.
        """

    @abstractmethod
    def remove(self, path: str) -> bool:
        """Delete the document at `path`. Return whether one existed."""

    @abstractmethod
    def subscribe(self, path: str, callback: SubscriptionCallback) -> Unsubscribe:
        """Deliver the current value now and after every change; None on deletion."""


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process store, optionally snapshotted to a JSON file.

    One re-entrant lock serializes all writes, so a transaction body never
    interleaves with another writer. Notifications are queued at commit time
    and drained in commit order, including commits made from inside a
    subscriber callback.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._documents: dict[str, Document] = {}
        self._subscribers: dict[str, dict[int, SubscriptionCallback]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()
        self._pending: deque[tuple[str, Document | None, int | None]] = deque()
        self._delivering = False
        if self.path is not None and self.path.exists():
            self._documents = self._load()

    def get(self, path: str) -> Document | None:
        with self._lock:
            return copy_document(self._documents.get(path))

    def list(self, collection: str) -> list[tuple[str, Document]]:
        prefix = collection.rstrip("/") + "/"
        with self._lock:
            return [
                (path[len(prefix):], copy_document(value))
                for path, value in self._documents.items()
                if path.startswith(prefix) and "/" not in path[len(prefix):]
            ]

    def create(self, path: str, value: Mapping[str, Any]) -> bool:
        with self._lock:
            if path in self._documents:
                return False
            self._commit(path, self._detach(value))
            self._flush()
            return True

    def set(self, path: str, value: Mapping[str, Any]) -> None:
        with self._lock:
            self._commit(path, self._detach(value))
            self._flush()

    def update(self, path: str, fields: Mapping[str, Any]) -> Document:
        with self._lock:
            current = self._documents.get(path)
            if current is None:
                raise DocumentNotFoundError(path)
            merged = dict(current)
            merged.update(self._detach(fields))
            self._commit(path, merged)
            self._flush()
            return copy_document(merged)

    def transaction(self, path: str, update_fn: TransactionFn) -> TransactionResult:
        with self._lock:
            proposed = update_fn(copy_document(self._documents.get(path)))
            if proposed is None:
                return TransactionResult(committed=False, value=copy_document(self._documents.get(path)))
            stored = self._detach(proposed)
            self._commit(path, stored)
            self._flush()
            return TransactionResult(committed=True, value=copy_document(stored))

    def remove(self, path: str) -> bool:
        with self._lock:
            if path not in self._documents:
                return False
            self._commit(path, None)
            self._flush()
            return True

    def subscribe(self, path: str, callback: SubscriptionCallback) -> Unsubscribe:
        with self._lock:
            token = next(self._tokens)
            self._subscribers.setdefault(path, {})[token] = callback
            self._pending.append((path, copy_document(self._documents.get(path)), token))
            self._flush()

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(path)
                if callbacks is None:
                    return
                callbacks.pop(token, None)
                if not callbacks:
                    self._subscribers.pop(path, None)

        return unsubscribe

    def subscriber_count(self, path: str) -> int:
        with self._lock:
            return len(self._subscribers.get(path, {}))

    def _detach(self, value: Mapping[str, Any]) -> Document:
        try:
            return copy_document(dict(value))
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Document is not JSON-compatible: {exc}") from exc

    def _commit(self, path: str, value: Document | None) -> None:
        documents = dict(self._documents)
        if value is None:
            documents.pop(path, None)
        else:
            documents[path] = value
        self._persist(documents)
        self._documents = documents
        logger.debug("commit %s (%s)", path, "delete" if value is None else "write")
        self._pending.append((path, copy_document(value), None))

    def _flush(self) -> None:
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending:
                path, value, target = self._pending.popleft()
                callbacks = self._subscribers.get(path, {})
                if target is not None:
                    selected = [callbacks[target]] if target in callbacks else []
                else:
                    selected = list(callbacks.values())
                for callback in selected:
                    try:
                        callback(copy_document(value))
                    except Exception:
                        logger.exception("subscriber for %s raised", path)
        finally:
            self._delivering = False

    def _load(self) -> dict[str, Document]:
        assert self.path is not None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Could not load store snapshot {self.path}: {exc}") from exc
        documents = raw.get("documents", {}) if isinstance(raw, dict) else {}
        return {str(path): value for path, value in documents.items() if isinstance(value, dict)}

    def _persist(self, documents: Mapping[str, Document]) -> None:
        if self.path is None:
            return
        payload = {"version": 1, "documents": documents}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp = self.path.with_suffix(self.path.suffix + ".tmp")
            temp.write_text(json.dumps(payload, sort_keys=True, indent=2), encoding="utf-8")
            temp.replace(self.path)
        except OSError as exc:
            raise StoreError(f"Could not persist store snapshot {self.path}: {exc}") from exc
