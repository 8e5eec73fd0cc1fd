from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field

from analysis_worker.core.models import CamelModel

UNCATEGORIZED_TEAM_ID = "uncategorized"
UNCATEGORIZED_TEAM_NAME = "Uncategorized"


class Team(CamelModel):
    id: str
    name: str
    organization_id: str
    color: str = "#3B82F6"
    order_index: int = 0
    is_system: bool = False
    created_at: datetime


# -----------------------------------------------------------------------------
# Team structure tree (tagged by "type")
# -----------------------------------------------------------------------------


class AnalysisRef(CamelModel):
    id: str
    type: Literal["analysis"] = "analysis"


class Folder(CamelModel):
    id: str
    type: Literal["folder"] = "folder"
    name: str
    expanded: bool = False
    items: list[TreeItem] = Field(default_factory=list)


TreeItem = Annotated[Union[AnalysisRef, Folder], Field(discriminator="type")]

Folder.model_rebuild()


class TeamStructure(CamelModel):
    items: list[TreeItem] = Field(default_factory=list)


@dataclass
class FindItemResult:
    """A located tree item with its immediate container.

    ``parent`` is None for root-level items; ``index`` is the position in the
    container's ``items`` list.
    """

    parent: Folder | None
    item: AnalysisRef | Folder | None
    index: int


# -----------------------------------------------------------------------------
# Operation results
# -----------------------------------------------------------------------------


class MoveAnalysisResult(CamelModel):
    analysis_id: str
    analysis_name: str
    from_team: str | None = Field(default=None, alias="from")
    to_team: str = Field(alias="to")


class DeleteTeamResult(CamelModel):
    deleted: str
    name: str
    analyses_moved: int = 0


class DeleteFolderResult(CamelModel):
    deleted: str
    children_moved: int


class MoveItemResult(CamelModel):
    moved: str
    to: str


class TeamAnalysisCount(CamelModel):
    team_id: str
    count: int


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class CreateTeamRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    color: str | None = None
    order: int | None = Field(default=None, ge=0)


class UpdateTeamRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    color: str | None = None
    order: int | None = Field(default=None, ge=0)


class ReorderTeamsRequest(CamelModel):
    team_ids: list[str] = Field(default_factory=list)


class CreateFolderRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    parent_id: str | None = None
    expanded: bool = False


class UpdateFolderRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    expanded: bool | None = None


class MoveItemRequest(CamelModel):
    item_id: str
    target_folder_id: str | None = None
    position: int = Field(default=0, ge=0)


class MoveAnalysisRequest(CamelModel):
    team_id: str
