"""
Config Store - the single JSON document that is the source of truth for
analysis metadata and every team's folder tree.

Reads always come from disk so that callers observe the latest committed
document. Writes are read-modify-write under an in-process lock.
"""

from __future__ import annotations

import asyncio
import inspect
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar, Union

from analysis_worker.analyses.models import CONFIG_DOCUMENT_VERSION, ConfigDocument
from analysis_worker.config import settings
from analysis_worker.core.errors import NotFoundError
from analysis_worker.core.files import read_json, write_json_atomic
from analysis_worker.core.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILE_NAME = "analyses-config.json"

T = TypeVar("T")

ConfigMutator = Callable[[ConfigDocument], Union[T, Awaitable[T]]]


def _migrate_payload(payload: dict[str, Any]) -> bool:
    """Bring an older document up to the current shape in place.

    Returns True when anything changed.
    """
    changed = False
    if not isinstance(payload.get("analyses"), dict):
        payload["analyses"] = {}
        changed = True
    if not isinstance(payload.get("teamStructure"), dict):
        payload["teamStructure"] = {}
        changed = True

    for analysis_id, record in payload["analyses"].items():
        if not isinstance(record, dict):
            continue
        if not record.get("id"):
            record["id"] = analysis_id
            changed = True
        if not record.get("name"):
            record["name"] = analysis_id
            changed = True
        for stamp in ("createdAt", "updatedAt"):
            if not record.get(stamp):
                record[stamp] = record.get("lastModified") or "1970-01-01T00:00:00Z"
                changed = True

    if payload.get("version") != CONFIG_DOCUMENT_VERSION:
        payload["version"] = CONFIG_DOCUMENT_VERSION
        changed = True
    return changed


class ConfigStore:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root
        self._lock = asyncio.Lock()

    @property
    def root_path(self) -> Path:
        return self._root or Path(settings.storage_path)

    @property
    def config_path(self) -> Path:
        return self.root_path / "config" / CONFIG_FILE_NAME

    @property
    def analyses_path(self) -> Path:
        return self.root_path / "analyses"

    async def initialize_storage(self) -> ConfigDocument:
        """Create the storage directories and an empty document if needed."""
        async with self._lock:
            await asyncio.to_thread(self._initialize_storage_sync)
            return await asyncio.to_thread(self._load_sync)

    def _initialize_storage_sync(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.analyses_path.mkdir(parents=True, exist_ok=True)
        if not self.config_path.exists():
            logger.info("No existing config file, creating %s", self.config_path)
            write_json_atomic(self.config_path, ConfigDocument().to_json_dict())

    def _load_sync(self) -> ConfigDocument:
        try:
            payload = read_json(self.config_path)
        except FileNotFoundError as exc:
            raise NotFoundError(
                f"Config file {self.config_path} not found; storage is not initialized"
            ) from exc

        if _migrate_payload(payload):
            logger.info(
                "Migrated config document to version %s", CONFIG_DOCUMENT_VERSION
            )
            write_json_atomic(self.config_path, payload)
        return ConfigDocument.model_validate(payload)

    def _save_sync(self, document: ConfigDocument) -> None:
        write_json_atomic(self.config_path, document.to_json_dict())

    async def get_config(self) -> ConfigDocument:
        """Load the current document.

        Raises:
            NotFoundError: If storage has not been initialized.
        """
        return await asyncio.to_thread(self._load_sync)

    async def update_config(
        self,
        change: ConfigDocument | ConfigMutator[T],
    ) -> T | None:
        """Read-modify-write the document.

        ``change`` is either a whole document, which replaces the stored one,
        or a mutator applied to a freshly loaded document. The mutator may be
        sync or async; its return value is returned. If it raises, nothing is
        written.
        """
        async with self._lock:
            if isinstance(change, ConfigDocument):
                await asyncio.to_thread(self._save_sync, change)
                return None

            document = await asyncio.to_thread(self._load_sync)
            result = change(document)
            if inspect.isawaitable(result):
                result = await result
            await asyncio.to_thread(self._save_sync, document)
            return result


config_store = ConfigStore()
