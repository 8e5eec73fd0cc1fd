"""
Version Store - append-only version history for each analysis.

Layout under ``analyses/<id>/``::

    index.js                 live content
    versions/metadata.json   {versions, nextVersionNumber, currentVersion}
    versions/v<N>.js         immutable snapshot of version N

Version numbers start at 1, only ever increase, and are never reused. A save
is deduplicated against the snapshot of the current version only. The
metadata file is always written last, so an interrupted save leaves the
previous history intact.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
from datetime import datetime, timezone
from pathlib import Path

from analysis_worker.analyses.log_store import LogStore, log_store
from analysis_worker.analyses.models import (
    RollbackResult,
    VersionDescriptor,
    VersionMetadata,
    VersionPage,
)
from analysis_worker.config import settings
from analysis_worker.core.errors import NotFoundError, VersionNotFoundError
from analysis_worker.core.files import (
    read_json,
    read_text_exact,
    safe_child,
    write_json_atomic,
    write_text_atomic,
)
from analysis_worker.core.logging import get_logger

logger = get_logger(__name__)

LIVE_FILE_NAME = "index.js"
METADATA_FILE_NAME = "metadata.json"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def fingerprint(content: str) -> tuple[int, str]:
    """Byte size plus SHA-256 of the UTF-8 encoded content."""
    encoded = content.encode("utf-8")
    return len(encoded), hashlib.sha256(encoded).hexdigest()


class VersionStore:
    def __init__(
        self,
        root: Path | None = None,
        logs: LogStore | None = None,
    ) -> None:
        self._root = root
        if logs is None:
            logs = LogStore(root) if root is not None else log_store
        self._logs = logs
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def analyses_path(self) -> Path:
        return (self._root or Path(settings.storage_path)) / "analyses"

    def _lock_for(self, analysis_id: str) -> asyncio.Lock:
        lock = self._locks.get(analysis_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[analysis_id] = lock
        return lock

    def forget(self, analysis_id: str) -> None:
        """Drop per-analysis state once the analysis is deleted."""
        self._locks.pop(analysis_id, None)

    def _analysis_dir(self, analysis_id: str) -> Path:
        return safe_child(self.analyses_path, analysis_id)

    def _versions_dir(self, analysis_id: str) -> Path:
        return self._analysis_dir(analysis_id) / "versions"

    def _metadata_path(self, analysis_id: str) -> Path:
        return self._versions_dir(analysis_id) / METADATA_FILE_NAME

    def _live_path(self, analysis_id: str) -> Path:
        return self._analysis_dir(analysis_id) / LIVE_FILE_NAME

    def _snapshot_path(self, analysis_id: str, version: int) -> Path:
        return self._versions_dir(analysis_id) / f"v{version}.js"

    def _require_analysis_dir(self, analysis_id: str) -> None:
        if not self._analysis_dir(analysis_id).is_dir():
            raise NotFoundError(f"Analysis {analysis_id} not found")

    # ------------------------------------------------------------------
    # Sync helpers (run via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _load_metadata_sync(self, analysis_id: str) -> VersionMetadata:
        path = self._metadata_path(analysis_id)
        if not path.exists():
            return VersionMetadata()
        payload = read_json(path)
        if "currentVersion" not in payload:
            versions = payload.get("versions") or []
            payload["currentVersion"] = versions[-1]["version"] if versions else 0
        return VersionMetadata.model_validate(payload)

    def _write_metadata_sync(self, analysis_id: str, metadata: VersionMetadata) -> None:
        write_json_atomic(self._metadata_path(analysis_id), metadata.to_json_dict())

    def _read_snapshot_sync(self, analysis_id: str, version: int) -> str | None:
        path = self._snapshot_path(analysis_id, version)
        if not path.is_file():
            return None
        return read_text_exact(path)

    @staticmethod
    def _find_descriptor(
        metadata: VersionMetadata, version: int
    ) -> VersionDescriptor | None:
        for descriptor in metadata.versions:
            if descriptor.version == version:
                return descriptor
        return None

    def _append_snapshot_sync(
        self,
        analysis_id: str,
        metadata: VersionMetadata,
        content: str,
    ) -> VersionDescriptor:
        """Write the next snapshot file and record it in ``metadata`` (not persisted)."""
        version = metadata.next_version_number
        write_text_atomic(self._snapshot_path(analysis_id, version), content)
        descriptor = VersionDescriptor(
            version=version,
            timestamp=_utc_now(),
            size=fingerprint(content)[0],
        )
        metadata.versions.append(descriptor)
        metadata.next_version_number = version + 1
        return descriptor

    def _save_version_sync(self, analysis_id: str, content: str) -> VersionDescriptor:
        self._require_analysis_dir(analysis_id)
        metadata = self._load_metadata_sync(analysis_id)

        current = self._find_descriptor(metadata, metadata.current_version)
        if current is not None:
            current_content = self._read_snapshot_sync(analysis_id, current.version)
            if current_content is not None and fingerprint(
                current_content
            ) == fingerprint(content):
                logger.debug(
                    "Content of analysis %s unchanged from version %d",
                    analysis_id,
                    current.version,
                )
                return current

        descriptor = self._append_snapshot_sync(analysis_id, metadata, content)
        metadata.current_version = descriptor.version
        try:
            write_text_atomic(self._live_path(analysis_id), content)
            self._write_metadata_sync(analysis_id, metadata)
        except OSError:
            logger.error(
                "FAILED to commit version %d of analysis %s",
                descriptor.version,
                analysis_id,
            )
            raise
        return descriptor

    def _rollback_sync(self, analysis_id: str, version: int) -> RollbackResult:
        self._require_analysis_dir(analysis_id)
        target_content = self._read_snapshot_sync(analysis_id, version)
        if target_content is None:
            raise VersionNotFoundError(version)

        metadata = self._load_metadata_sync(analysis_id)
        live_path = self._live_path(analysis_id)
        saved_version: int | None = None
        if live_path.is_file():
            live_content = read_text_exact(live_path)
            if fingerprint(live_content) != fingerprint(target_content):
                saved_version = self._append_snapshot_sync(
                    analysis_id, metadata, live_content
                ).version

        write_text_atomic(live_path, target_content)
        metadata.current_version = version
        self._write_metadata_sync(analysis_id, metadata)
        return RollbackResult(version=version, saved_version=saved_version)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def save_version(self, analysis_id: str, content: str) -> VersionDescriptor:
        """Store ``content`` as the new current version and live file.

        Identical content to the current version returns the existing
        descriptor without writing anything.
        """
        async with self._lock_for(analysis_id):
            descriptor = await asyncio.to_thread(
                self._save_version_sync, analysis_id, content
            )
        logger.info(
            "Analysis %s is at version %d (%d bytes)",
            analysis_id,
            descriptor.version,
            descriptor.size,
        )
        return descriptor

    async def get_metadata(self, analysis_id: str) -> VersionMetadata:
        return await asyncio.to_thread(self._load_metadata_sync, analysis_id)

    async def list_versions(self, analysis_id: str) -> list[VersionDescriptor]:
        metadata = await self.get_metadata(analysis_id)
        return sorted(metadata.versions, key=lambda descriptor: descriptor.version)

    async def get_versions(
        self,
        analysis_id: str,
        page: int = 1,
        limit: int | None = None,
    ) -> VersionPage:
        """Paginated history, newest first."""
        limit = limit or settings.version_page_size
        page = max(1, page)
        metadata = await self.get_metadata(analysis_id)
        ordered = sorted(
            metadata.versions, key=lambda descriptor: descriptor.version, reverse=True
        )
        total_pages = math.ceil(len(ordered) / limit) if ordered else 0
        start = (page - 1) * limit
        return VersionPage(
            versions=ordered[start : start + limit],
            page=page,
            limit=limit,
            total_count=len(ordered),
            total_pages=total_pages,
            has_more=page < total_pages,
            next_version_number=metadata.next_version_number,
            current_version=metadata.current_version,
        )

    async def rollback(self, analysis_id: str, version: int) -> RollbackResult:
        """Make ``version`` live again.

        The live content is first kept as a new version when it differs from
        the target, and the analysis logs are cleared afterwards.
        """
        logger.debug("Rolling back analysis %s to version %d", analysis_id, version)
        async with self._lock_for(analysis_id):
            result = await asyncio.to_thread(self._rollback_sync, analysis_id, version)
        await self._logs.clear_logs(analysis_id)
        logger.info(
            "Rolled back analysis %s to version %d (saved live content as %s)",
            analysis_id,
            version,
            result.saved_version,
        )
        return result

    async def get_content(self, analysis_id: str, version: int | None = None) -> str:
        """Live content for ``version`` None/0, otherwise the named snapshot."""
        if not version:
            live_path = self._live_path(analysis_id)
            try:
                return await asyncio.to_thread(read_text_exact, live_path)
            except FileNotFoundError as exc:
                raise NotFoundError(f"Analysis {analysis_id} not found") from exc

        content = await asyncio.to_thread(
            self._read_snapshot_sync, analysis_id, version
        )
        if content is None:
            raise VersionNotFoundError(version)
        return content


version_store = VersionStore()
