"""Per-analysis environment file ``analyses/<id>/env/.env``.

The file is an opaque blob of ``KEY=value`` lines; values are stored as given.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from analysis_worker.config import settings
from analysis_worker.core.errors import ValidationError
from analysis_worker.core.files import read_text_exact, safe_child, write_text_atomic
from analysis_worker.core.logging import get_logger

logger = get_logger(__name__)

ENV_FILE_NAME = ".env"


def parse_env(content: str) -> dict[str, str]:
    env: dict[str, str] = {}
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            env[key] = value
    return env


def _has_line_break(text: str) -> bool:
    # Any separator str.splitlines() honours, not only "\n"
    return bool(text) and text.splitlines() != [text]


def serialize_env(env: dict[str, str]) -> str:
    lines = []
    for key, value in env.items():
        if not key or "=" in key or _has_line_break(key):
            raise ValidationError(f"Invalid environment variable name: {key!r}")
        if _has_line_break(value):
            raise ValidationError(f"Environment variable {key} contains a line break")
        lines.append(f"{key}={value}")
    return "\n".join(lines)


class EnvStore:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    @property
    def analyses_path(self) -> Path:
        return (self._root or Path(settings.storage_path)) / "analyses"

    def _env_file(self, analysis_id: str) -> Path:
        return safe_child(self.analyses_path, analysis_id) / "env" / ENV_FILE_NAME

    async def get_raw(self, analysis_id: str) -> str:
        env_file = self._env_file(analysis_id)
        try:
            return await asyncio.to_thread(read_text_exact, env_file)
        except FileNotFoundError:
            return ""

    async def set_raw(self, analysis_id: str, content: str) -> None:
        await asyncio.to_thread(
            write_text_atomic, self._env_file(analysis_id), content
        )

    async def get_environment(self, analysis_id: str) -> dict[str, str]:
        return parse_env(await self.get_raw(analysis_id))

    async def update_environment(
        self, analysis_id: str, env: dict[str, str]
    ) -> dict[str, str]:
        await self.set_raw(analysis_id, serialize_env(env))
        logger.info(
            "Updated %d environment variable(s) for analysis %s",
            len(env),
            analysis_id,
        )
        return dict(env)


env_store = EnvStore()
