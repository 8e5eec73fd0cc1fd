from __future__ import annotations

from fastapi import APIRouter

from analysis_worker.analyses.models import AnalysisRecord
from analysis_worker.api.auth import ApiKeyAuth
from analysis_worker.teams.models import (
    CreateFolderRequest,
    CreateTeamRequest,
    DeleteFolderResult,
    DeleteTeamResult,
    Folder,
    MoveAnalysisRequest,
    MoveAnalysisResult,
    MoveItemRequest,
    MoveItemResult,
    ReorderTeamsRequest,
    Team,
    TeamAnalysisCount,
    TeamStructure,
    UpdateFolderRequest,
    UpdateTeamRequest,
)
from analysis_worker.teams.service import team_service

router = APIRouter(prefix="/api/teams", tags=["Teams"], dependencies=[ApiKeyAuth])

# Team assignment is addressed by analysis
assignment_router = APIRouter(
    prefix="/api/analyses", tags=["Teams"], dependencies=[ApiKeyAuth]
)


@router.get("", response_model=list[Team])
async def list_teams():
    return await team_service.get_all_teams()


@router.post("", response_model=Team, status_code=201)
async def create_team(request: CreateTeamRequest):
    return await team_service.create_team(
        request.name, color=request.color, order=request.order
    )


@router.put("/reorder", response_model=list[Team])
async def reorder_teams(request: ReorderTeamsRequest):
    return await team_service.reorder_teams(request.team_ids)


@router.put("/{team_id}", response_model=Team)
async def update_team(team_id: str, request: UpdateTeamRequest):
    return await team_service.update_team(
        team_id, name=request.name, color=request.color, order=request.order
    )


@router.delete("/{team_id}", response_model=DeleteTeamResult)
async def delete_team(team_id: str):
    return await team_service.delete_team(team_id)


@router.get("/{team_id}/analyses", response_model=list[AnalysisRecord])
async def get_team_analyses(team_id: str):
    return await team_service.get_analyses_by_team(team_id)


@router.get("/{team_id}/count", response_model=TeamAnalysisCount)
async def get_team_analysis_count(team_id: str):
    count = await team_service.get_analysis_count_by_team_id(team_id)
    return TeamAnalysisCount(team_id=team_id, count=count)


@router.get("/{team_id}/structure", response_model=TeamStructure)
async def get_team_structure(team_id: str):
    items = await team_service.get_team_structure(team_id)
    return TeamStructure(items=items)


@router.post("/{team_id}/folders", response_model=Folder, status_code=201)
async def create_folder(team_id: str, request: CreateFolderRequest):
    return await team_service.create_folder(
        team_id, request.parent_id, request.name, expanded=request.expanded
    )


@router.put("/{team_id}/folders/{folder_id}", response_model=Folder)
async def update_folder(team_id: str, folder_id: str, request: UpdateFolderRequest):
    return await team_service.update_folder(
        team_id, folder_id, name=request.name, expanded=request.expanded
    )


@router.delete("/{team_id}/folders/{folder_id}", response_model=DeleteFolderResult)
async def delete_folder(team_id: str, folder_id: str):
    return await team_service.delete_folder(team_id, folder_id)


@router.post("/{team_id}/items/move", response_model=MoveItemResult)
async def move_item(team_id: str, request: MoveItemRequest):
    return await team_service.move_item(
        team_id, request.item_id, request.target_folder_id, request.position
    )


@assignment_router.put("/{analysis_id}/team", response_model=MoveAnalysisResult)
async def move_analysis_to_team(analysis_id: str, request: MoveAnalysisRequest):
    return await team_service.move_analysis_to_team(analysis_id, request.team_id)
