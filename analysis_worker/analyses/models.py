from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from analysis_worker.core.models import CamelModel
from analysis_worker.teams.models import TeamStructure

CONFIG_DOCUMENT_VERSION = "5.0"

AnalysisStatus = Literal["stopped", "running", "error"]


class AnalysisRecord(CamelModel):
    id: str
    name: str
    team_id: str | None = None
    enabled: bool = True
    status: AnalysisStatus = "stopped"
    path: str = ""
    created_at: datetime
    updated_at: datetime


class ConfigDocument(CamelModel):
    """The single JSON document holding analysis metadata and team trees."""

    version: str = CONFIG_DOCUMENT_VERSION
    analyses: dict[str, AnalysisRecord] = Field(default_factory=dict)
    team_structure: dict[str, TeamStructure] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Versions
# -----------------------------------------------------------------------------


class VersionDescriptor(CamelModel):
    version: int
    timestamp: datetime
    size: int


class VersionMetadata(CamelModel):
    versions: list[VersionDescriptor] = Field(default_factory=list)
    next_version_number: int = 1
    current_version: int = 0


class VersionPage(CamelModel):
    versions: list[VersionDescriptor]
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_more: bool
    next_version_number: int
    current_version: int


class RollbackResult(CamelModel):
    success: bool = True
    version: int
    saved_version: int | None = Field(
        default=None,
        description="Version created from the live content before rolling back",
    )


# -----------------------------------------------------------------------------
# Logs
# -----------------------------------------------------------------------------


class LogEntry(CamelModel):
    sequence: int
    timestamp: datetime
    message: str


class LogPage(CamelModel):
    logs: list[LogEntry]
    page: int
    limit: int
    has_more: bool
    total_count: int


# -----------------------------------------------------------------------------
# Analyses
# -----------------------------------------------------------------------------


class AnalysisPage(CamelModel):
    analyses: list[AnalysisRecord]
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class RenameResult(CamelModel):
    success: bool = True
    old_name: str
    new_name: str


class DeleteAnalysisResult(CamelModel):
    deleted: str
    name: str


class UploadAnalysisRequest(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    content: str = Field(default="", description="JavaScript source")
    team_id: str | None = None
    folder_id: str | None = None


class RenameAnalysisRequest(CamelModel):
    new_name: str = Field(min_length=1, max_length=200)


class UpdateContentRequest(CamelModel):
    content: str


class SetEnabledRequest(CamelModel):
    enabled: bool


class RollbackRequest(CamelModel):
    version: int = Field(ge=1)


class UpdateEnvironmentRequest(CamelModel):
    env: dict[str, str] = Field(default_factory=dict)
