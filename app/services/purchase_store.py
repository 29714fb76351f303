"""
Purchase Store - Persistence for per-device purchase records.

The whole document is read on every lookup and rewritten on every update.
There is no cache across calls, so a restarted process always sees the file.
"""

import json
import os
from pathlib import Path
from typing import Protocol

from structlog import get_logger

from app.exceptions import CorruptStoreError, PurchaseStoreError
from app.models.domain import PurchaseRecord

logger = get_logger(__name__)

PurchaseMap = dict[str, PurchaseRecord]


class PurchaseStore(Protocol):
    """Whole-document purchase store."""

    def read(self) -> PurchaseMap:
        """
        Load every purchase record.

        Returns:
            Mapping of composite key to record (empty if nothing persisted)

        Raises:
            CorruptStoreError: If the persisted document cannot be parsed
        """
        ...

    def write(self, purchases: PurchaseMap) -> None:
        """Replace the persisted document with the given mapping."""
        ...


def parse_document(raw_text: str, source: str) -> PurchaseMap:
    """
    Parse a serialized purchase document.

    Only invalid JSON or a non-object top level make the document corrupt;
    individual records are parsed leniently.
    """
    try:
        raw = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise CorruptStoreError(source, f"invalid JSON: {exc.msg} (line {exc.lineno})") from exc

    if not isinstance(raw, dict):
        raise CorruptStoreError(source, "top-level value must be an object")

    return {key: PurchaseRecord.from_document(entry) for key, entry in raw.items()}


def serialize_document(purchases: PurchaseMap) -> str:
    """Serialize purchases as pretty-printed (2-space) JSON."""
    document = {key: record.to_document() for key, record in purchases.items()}
    return json.dumps(document, ensure_ascii=False, indent=2)


class JsonFilePurchaseStore:
    """
    Purchase store backed by a single JSON file.

    Writes go to a sibling temp file which then replaces the target, so a
    reader never observes a half-written document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> PurchaseMap:
        if not self.path.exists():
            return {}

        try:
            raw_text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("purchase_store_read_failed", path=str(self.path), error=str(exc))
            raise PurchaseStoreError(str(self.path), f"read failed: {exc}") from exc

        return parse_document(raw_text, str(self.path))

    def write(self, purchases: PurchaseMap) -> None:
        content = serialize_document(purchases)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("purchase_store_write_failed", path=str(self.path), error=str(exc))
            raise PurchaseStoreError(str(self.path), f"write failed: {exc}") from exc

        logger.debug("purchase_store_written", path=str(self.path), records=len(purchases))


class InMemoryPurchaseStore:
    """Purchase store held in process memory (lost on restart)."""

    def __init__(self, purchases: PurchaseMap | None = None) -> None:
        self._purchases: PurchaseMap = dict(purchases or {})
        self.reads = 0
        self.writes = 0

    def read(self) -> PurchaseMap:
        self.reads += 1
        return dict(self._purchases)

    def write(self, purchases: PurchaseMap) -> None:
        self.writes += 1
        self._purchases = dict(purchases)
