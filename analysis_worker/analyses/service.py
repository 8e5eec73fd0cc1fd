"""
Analysis Service - the facade the HTTP layer and the Team Service use.

Owns analysis records in the config document and routes content, history,
logs and environment to the per-analysis stores. Every operation that
takes an analysis id checks that the record exists first.
"""

from __future__ import annotations

import asyncio
import math
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable
from uuid import uuid4

from analysis_worker.analyses.config_store import ConfigStore, config_store
from analysis_worker.analyses.env_store import EnvStore, env_store
from analysis_worker.analyses.log_store import LogStore, log_store
from analysis_worker.analyses.models import (
    AnalysisPage,
    AnalysisRecord,
    ConfigDocument,
    DeleteAnalysisResult,
    LogPage,
    RenameResult,
    RollbackResult,
    VersionDescriptor,
    VersionPage,
)
from analysis_worker.analyses.version_store import VersionStore, version_store
from analysis_worker.core.errors import (
    InitializationError,
    NotFoundError,
    ValidationError,
)
from analysis_worker.core.files import safe_child
from analysis_worker.core.logging import get_logger
from analysis_worker.teams import tree
from analysis_worker.teams.models import UNCATEGORIZED_TEAM_ID, AnalysisRef, TeamStructure

logger = get_logger(__name__)

SCRIPT_SUFFIX = ".js"

TeamLookup = Callable[[str], Awaitable[Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_name(name: str) -> str:
    name = (name or "").strip()
    if name.lower().endswith(SCRIPT_SUFFIX):
        name = name[: -len(SCRIPT_SUFFIX)].strip()
    if not name:
        raise ValidationError("Analysis name is required")
    return name


class AnalysisService:
    def __init__(
        self,
        store: ConfigStore | None = None,
        versions: VersionStore | None = None,
        logs: LogStore | None = None,
        env: EnvStore | None = None,
    ) -> None:
        self._store = store or config_store
        self._versions = versions or version_store
        self._logs = logs or log_store
        self._env = env or env_store
        self._team_lookup: TeamLookup | None = None

    def attach_team_lookup(self, lookup: TeamLookup) -> None:
        """Resolve team ids through ``lookup`` (returns the team or None)."""
        self._team_lookup = lookup

    async def _require_team(self, team_id: str) -> None:
        if team_id == UNCATEGORIZED_TEAM_ID:
            return
        if self._team_lookup is None:
            raise InitializationError("Team lookup is not configured")
        if await self._team_lookup(team_id) is None:
            raise NotFoundError(f"Team {team_id} not found")

    # Config Store contract, used by the Team Service

    async def get_config(self) -> ConfigDocument:
        return await self._store.get_config()

    async def update_config(self, change: Any) -> Any:
        return await self._store.update_config(change)

    def _analysis_dir(self, analysis_id: str) -> Path:
        return safe_child(self._store.analyses_path, analysis_id)

    async def _touch(self, analysis_id: str) -> None:
        def _stamp(doc: ConfigDocument) -> None:
            record = doc.analyses.get(analysis_id)
            if record is not None:
                record.updated_at = _utc_now()

        await self._store.update_config(_stamp)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_analysis(self, analysis_id: str) -> AnalysisRecord:
        document = await self._store.get_config()
        record = document.analyses.get(analysis_id)
        if record is None:
            raise NotFoundError(f"Analysis {analysis_id} not found")
        return record

    async def list_analyses(
        self,
        search: str | None = None,
        team_id: str | None = None,
        allowed_team_ids: list[str] | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> AnalysisPage:
        """Filter and paginate the analysis records in insertion order.

        ``allowed_team_ids`` restricts results to the given teams when the
        caller's permissions have already been resolved.
        """
        document = await self._store.get_config()
        records = list(document.analyses.values())

        if allowed_team_ids is not None:
            allowed = set(allowed_team_ids)
            records = [r for r in records if (r.team_id or UNCATEGORIZED_TEAM_ID) in allowed]
        if team_id:
            records = [r for r in records if r.team_id == team_id]
        if search:
            needle = search.strip().lower()
            records = [r for r in records if needle in r.name.lower()]

        page = max(1, page)
        limit = max(1, limit)
        total_pages = math.ceil(len(records) / limit) if records else 0
        start = (page - 1) * limit
        return AnalysisPage(
            analyses=records[start : start + limit],
            page=page,
            limit=limit,
            total=len(records),
            total_pages=total_pages,
            has_more=page < total_pages,
        )

    async def upload_analysis(
        self,
        name: str,
        content: str,
        team_id: str | None = None,
        folder_id: str | None = None,
    ) -> AnalysisRecord:
        """Create an analysis with ``content`` as version 1."""
        name = _normalize_name(name)
        team_id = team_id or UNCATEGORIZED_TEAM_ID
        await self._require_team(team_id)

        if folder_id:
            document = await self._store.get_config()
            structure = document.team_structure.get(team_id)
            folder = tree.find_item_by_id(structure.items, folder_id) if structure else None
            if folder is None or folder.type != "folder":
                raise NotFoundError(f"Parent folder {folder_id} not found")

        analysis_id = str(uuid4())
        analysis_dir = self._analysis_dir(analysis_id)
        await asyncio.to_thread(self._create_layout_sync, analysis_dir)

        try:
            await self._versions.save_version(analysis_id, content)
            now = _utc_now()
            record = AnalysisRecord(
                id=analysis_id,
                name=name,
                team_id=team_id,
                path=str(analysis_dir),
                created_at=now,
                updated_at=now,
            )

            def _register(doc: ConfigDocument) -> None:
                doc.analyses[analysis_id] = record
                items = doc.team_structure.setdefault(team_id, TeamStructure()).items
                tree.add_item(items, AnalysisRef(id=analysis_id), folder_id)

            await self._store.update_config(_register)
        except Exception:
            logger.error("Upload of analysis '%s' failed, removing %s", name, analysis_dir)
            await asyncio.to_thread(shutil.rmtree, analysis_dir, True)
            raise

        logger.info("Uploaded analysis '%s' (%s) to team %s", name, analysis_id, team_id)
        return record

    @staticmethod
    def _create_layout_sync(analysis_dir: Path) -> None:
        for child in ("env", "logs", "versions"):
            (analysis_dir / child).mkdir(parents=True, exist_ok=True)
        (analysis_dir / "env" / ".env").touch()

    async def rename_analysis(self, analysis_id: str, new_name: str) -> RenameResult:
        new_name = _normalize_name(new_name)

        def _rename(doc: ConfigDocument) -> str:
            record = doc.analyses.get(analysis_id)
            if record is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            old_name = record.name
            record.name = new_name
            record.updated_at = _utc_now()
            return old_name

        old_name = await self._store.update_config(_rename)
        await self._logs.add_log(
            analysis_id, f"Analysis renamed from '{old_name}' to '{new_name}'"
        )
        logger.info("Renamed analysis %s from '%s' to '%s'", analysis_id, old_name, new_name)
        return RenameResult(old_name=old_name, new_name=new_name)

    async def set_enabled(self, analysis_id: str, enabled: bool) -> AnalysisRecord:
        def _set(doc: ConfigDocument) -> AnalysisRecord:
            record = doc.analyses.get(analysis_id)
            if record is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            record.enabled = enabled
            record.updated_at = _utc_now()
            return record

        record = await self._store.update_config(_set)
        logger.info("Analysis %s %s", analysis_id, "enabled" if enabled else "disabled")
        return record

    async def delete_analysis(self, analysis_id: str) -> DeleteAnalysisResult:
        def _delete(doc: ConfigDocument) -> AnalysisRecord:
            record = doc.analyses.pop(analysis_id, None)
            if record is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            for structure in doc.team_structure.values():
                tree.remove_analysis_ref(structure.items, analysis_id)
            return record

        record = await self._store.update_config(_delete)
        await asyncio.to_thread(shutil.rmtree, self._analysis_dir(analysis_id), True)
        self._versions.forget(analysis_id)
        logger.info("Deleted analysis '%s' (%s)", record.name, analysis_id)
        return DeleteAnalysisResult(deleted=analysis_id, name=record.name)

    # ------------------------------------------------------------------
    # Content and history
    # ------------------------------------------------------------------

    async def get_content(self, analysis_id: str, version: int | None = None) -> str:
        await self.get_analysis(analysis_id)
        return await self._versions.get_content(analysis_id, version)

    async def update_content(self, analysis_id: str, content: str) -> VersionDescriptor:
        await self.get_analysis(analysis_id)
        descriptor = await self._versions.save_version(analysis_id, content)
        await self._touch(analysis_id)
        return descriptor

    async def get_versions(
        self, analysis_id: str, page: int = 1, limit: int | None = None
    ) -> VersionPage:
        await self.get_analysis(analysis_id)
        return await self._versions.get_versions(analysis_id, page=page, limit=limit)

    async def rollback(self, analysis_id: str, version: int) -> RollbackResult:
        await self.get_analysis(analysis_id)
        result = await self._versions.rollback(analysis_id, version)
        await self._touch(analysis_id)
        return result

    # ------------------------------------------------------------------
    # Logs and environment
    # ------------------------------------------------------------------

    async def get_logs(
        self, analysis_id: str, page: int = 1, limit: int | None = None
    ) -> LogPage:
        await self.get_analysis(analysis_id)
        return await self._logs.get_logs(analysis_id, page=page, limit=limit)

    async def clear_logs(self, analysis_id: str) -> int:
        await self.get_analysis(analysis_id)
        return await self._logs.clear_logs(analysis_id)

    async def get_environment(self, analysis_id: str) -> dict[str, str]:
        await self.get_analysis(analysis_id)
        return await self._env.get_environment(analysis_id)

    async def update_environment(
        self, analysis_id: str, env: dict[str, str]
    ) -> dict[str, str]:
        await self.get_analysis(analysis_id)
        return await self._env.update_environment(analysis_id, env)


analysis_service = AnalysisService()
