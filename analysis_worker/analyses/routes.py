from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse

from analysis_worker.analyses.models import (
    AnalysisPage,
    AnalysisRecord,
    DeleteAnalysisResult,
    LogPage,
    RenameAnalysisRequest,
    RenameResult,
    RollbackRequest,
    RollbackResult,
    SetEnabledRequest,
    UpdateContentRequest,
    UpdateEnvironmentRequest,
    UploadAnalysisRequest,
    VersionDescriptor,
    VersionPage,
)
from analysis_worker.analyses.service import analysis_service
from analysis_worker.api.auth import ApiKeyAuth

router = APIRouter(prefix="/api/analyses", tags=["Analyses"], dependencies=[ApiKeyAuth])


@router.get("", response_model=AnalysisPage)
async def list_analyses(
    search: str | None = Query(default=None),
    team_id: str | None = Query(default=None, alias="teamId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
):
    return await analysis_service.list_analyses(
        search=search, team_id=team_id, page=page, limit=limit
    )


@router.post("", response_model=AnalysisRecord, status_code=201)
async def upload_analysis(request: UploadAnalysisRequest):
    return await analysis_service.upload_analysis(
        request.name,
        request.content,
        team_id=request.team_id,
        folder_id=request.folder_id,
    )


@router.get("/{analysis_id}", response_model=AnalysisRecord)
async def get_analysis(analysis_id: str):
    return await analysis_service.get_analysis(analysis_id)


@router.delete("/{analysis_id}", response_model=DeleteAnalysisResult)
async def delete_analysis(analysis_id: str):
    return await analysis_service.delete_analysis(analysis_id)


@router.put("/{analysis_id}/rename", response_model=RenameResult)
async def rename_analysis(analysis_id: str, request: RenameAnalysisRequest):
    return await analysis_service.rename_analysis(analysis_id, request.new_name)


@router.get("/{analysis_id}/content", response_class=PlainTextResponse)
async def get_content(
    analysis_id: str,
    version: int | None = Query(default=None, ge=0),
):
    """Live content, or the snapshot of ``version`` when given."""
    return await analysis_service.get_content(analysis_id, version)


@router.put("/{analysis_id}/content", response_model=VersionDescriptor)
async def update_content(analysis_id: str, request: UpdateContentRequest):
    return await analysis_service.update_content(analysis_id, request.content)


@router.put("/{analysis_id}/enabled", response_model=AnalysisRecord)
async def set_enabled(analysis_id: str, request: SetEnabledRequest):
    return await analysis_service.set_enabled(analysis_id, request.enabled)


@router.get("/{analysis_id}/versions", response_model=VersionPage)
async def get_versions(
    analysis_id: str,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
):
    return await analysis_service.get_versions(analysis_id, page=page, limit=limit)


@router.get("/{analysis_id}/versions/{version}", response_class=PlainTextResponse)
async def get_version_content(analysis_id: str, version: int):
    return await analysis_service.get_content(analysis_id, version)


@router.post("/{analysis_id}/rollback", response_model=RollbackResult)
async def rollback(analysis_id: str, request: RollbackRequest):
    return await analysis_service.rollback(analysis_id, request.version)


@router.get("/{analysis_id}/logs", response_model=LogPage)
async def get_logs(
    analysis_id: str,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=1000),
):
    return await analysis_service.get_logs(analysis_id, page=page, limit=limit)


@router.delete("/{analysis_id}/logs")
async def clear_logs(analysis_id: str):
    removed = await analysis_service.clear_logs(analysis_id)
    return {"success": True, "filesRemoved": removed}


@router.get("/{analysis_id}/env", response_model=dict[str, str])
async def get_environment(analysis_id: str):
    return await analysis_service.get_environment(analysis_id)


@router.put("/{analysis_id}/env", response_model=dict[str, str])
async def update_environment(analysis_id: str, request: UpdateEnvironmentRequest):
    return await analysis_service.update_environment(analysis_id, request.env)
