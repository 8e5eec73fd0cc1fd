"""Shared fixtures: every store, service and authority rooted at tmp_path."""

from pathlib import Path

import pytest

from analysis_worker.analyses.config_store import ConfigStore
from analysis_worker.analyses.env_store import EnvStore
from analysis_worker.analyses.log_store import LogStore
from analysis_worker.analyses.service import AnalysisService
from analysis_worker.analyses.version_store import VersionStore
from analysis_worker.config import settings
from analysis_worker.teams.authority import JsonTeamAuthority
from analysis_worker.teams.service import TeamService


class RecordingAuthority(JsonTeamAuthority):
    """JSON authority that records which mutating calls were made."""

    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.calls: list[str] = []

    async def create_team(self, organization_id, **kwargs):
        self.calls.append("create_team")
        return await super().create_team(organization_id, **kwargs)

    async def update_team(self, organization_id, team_id, fields):
        self.calls.append("update_team")
        return await super().update_team(organization_id, team_id, fields)

    async def remove_team(self, organization_id, team_id):
        self.calls.append("remove_team")
        return await super().remove_team(organization_id, team_id)


@pytest.fixture
def storage(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "storage_path", str(tmp_path))
    monkeypatch.setattr(settings, "team_authority_url", "")
    monkeypatch.setattr(settings, "api_key", "")
    return tmp_path


@pytest.fixture
async def config_store(storage):
    store = ConfigStore(storage)
    await store.initialize_storage()
    return store


@pytest.fixture
def log_store(storage):
    return LogStore(storage)


@pytest.fixture
def env_store(storage):
    return EnvStore(storage)


@pytest.fixture
def version_store(storage, log_store):
    return VersionStore(storage, logs=log_store)


@pytest.fixture
def analysis_dir(storage):
    """Directory of a bare analysis with id ``alpha``."""
    path = storage / "analyses" / "alpha"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def analysis_service(config_store, version_store, log_store, env_store):
    return AnalysisService(
        store=config_store, versions=version_store, logs=log_store, env=env_store
    )


@pytest.fixture
async def authority(storage):
    authority = RecordingAuthority(storage / "config" / "teams.json")
    await authority.ensure_organization("main")
    return authority


@pytest.fixture
async def team_service(analysis_service, authority):
    service = TeamService()
    await service.initialize(analysis_service, authority=authority)
    analysis_service.attach_team_lookup(service.get_team)
    authority.calls.clear()
    return service
