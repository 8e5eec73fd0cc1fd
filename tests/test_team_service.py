import pytest

from analysis_worker.core.errors import (
    ConflictError,
    InitializationError,
    InvalidOperationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from analysis_worker.teams.authority import JsonTeamAuthority, TeamAuthorityError
from analysis_worker.teams.models import UNCATEGORIZED_TEAM_NAME, AnalysisRef
from analysis_worker.teams.service import TeamService


def _names(teams):
    return [team.name for team in teams if not team.is_system]


async def _structure_ids(team_service, team_id):
    items = await team_service.get_team_structure(team_id)
    return [item.id for item in items]


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


async def test_initialize_creates_system_team(team_service):
    system_team = await team_service.get_system_team()

    assert system_team is not None
    assert system_team.name == UNCATEGORIZED_TEAM_NAME
    assert system_team.is_system is True
    assert team_service.organization_id == system_team.organization_id


async def test_initialize_is_idempotent(team_service, analysis_service, authority):
    await team_service.initialize(analysis_service, authority=authority)
    await TeamService().initialize(analysis_service, authority=authority)

    teams = await team_service.get_all_teams()
    assert sum(1 for team in teams if team.is_system) == 1


async def test_initialize_without_organization(analysis_service, storage):
    authority = JsonTeamAuthority(storage / "config" / "teams.json")

    with pytest.raises(InitializationError, match="Main organization not found"):
        await TeamService().initialize(analysis_service, authority=authority)


async def test_uninitialized_service_rejects_calls():
    with pytest.raises(InitializationError):
        await TeamService().get_all_teams()


# ---------------------------------------------------------------------------
# Team CRUD
# ---------------------------------------------------------------------------


async def test_create_team_defaults(team_service):
    first = await team_service.create_team("Operations")
    second = await team_service.create_team("Sales", color="#FF0000", order=7)

    assert first.color == "#3B82F6"
    assert first.order_index == 1
    assert second.color == "#FF0000"
    assert second.order_index == 7
    assert first.is_system is False


async def test_create_team_duplicate_name(team_service):
    await team_service.create_team("Operations")

    with pytest.raises(ConflictError, match='Team with name "Operations" already exists'):
        await team_service.create_team("Operations")


async def test_create_team_upstream_failure(team_service, authority, monkeypatch):
    async def _fail(*args, **kwargs):
        raise TeamAuthorityError("boom")

    monkeypatch.setattr(authority, "create_team", _fail)

    with pytest.raises(UpstreamError, match="Failed to create team: boom"):
        await team_service.create_team("Operations")


async def test_get_all_teams_is_sorted(team_service):
    await team_service.create_team("Zeta", order=2)
    await team_service.create_team("Beta", order=1)
    await team_service.create_team("Alpha", order=1)

    teams = await team_service.get_all_teams()

    assert teams[0].is_system is True
    assert _names(teams) == ["Alpha", "Beta", "Zeta"]


async def test_update_team(team_service):
    team = await team_service.create_team("Operations")

    updated = await team_service.update_team(team.id, name="Ops", color="#000000")

    assert updated.name == "Ops"
    assert updated.color == "#000000"
    assert (await team_service.get_team(team.id)).name == "Ops"


async def test_update_team_errors(team_service):
    team = await team_service.create_team("Operations")
    await team_service.create_team("Sales")

    with pytest.raises(ValidationError, match="No valid fields to update"):
        await team_service.update_team(team.id)
    with pytest.raises(NotFoundError, match="Team nonexistent not found"):
        await team_service.update_team("nonexistent", name="x")
    with pytest.raises(ConflictError):
        await team_service.update_team(team.id, name="Sales")


async def test_reorder_teams(team_service):
    t1 = await team_service.create_team("t1", order=0)
    t2 = await team_service.create_team("t2", order=1)

    teams = await team_service.reorder_teams([t2.id, t1.id])

    assert (await team_service.get_team(t2.id)).order_index == 0
    assert (await team_service.get_team(t1.id)).order_index == 1
    assert _names(teams) == ["t2", "t1"]
    assert _names(await team_service.get_all_teams()) == ["t2", "t1"]


async def test_delete_unknown_team_never_calls_upstream(team_service, authority):
    with pytest.raises(NotFoundError, match="Team nonexistent not found"):
        await team_service.delete_team("nonexistent")

    assert "remove_team" not in authority.calls


async def test_delete_system_team_is_rejected(team_service, authority):
    system_team = await team_service.get_system_team()

    with pytest.raises(InvalidOperationError, match="Cannot delete system team"):
        await team_service.delete_team(system_team.id)

    assert "remove_team" not in authority.calls


async def test_delete_team_reassigns_analyses(team_service, analysis_service):
    team = await team_service.create_team("Operations")
    system_team = await team_service.get_system_team()
    first = await analysis_service.upload_analysis("one", "1", team_id=team.id)
    folder = await team_service.create_folder(team.id, None, "Nested")
    second = await analysis_service.upload_analysis(
        "two", "2", team_id=team.id, folder_id=folder.id
    )

    result = await team_service.delete_team(team.id)

    assert result.deleted == team.id
    assert result.name == "Operations"
    assert result.analyses_moved == 2
    assert await team_service.get_team(team.id) is None

    document = await analysis_service.get_config()
    assert document.analyses[first.id].team_id == system_team.id
    assert document.analyses[second.id].team_id == system_team.id
    assert team.id not in document.team_structure
    assert await _structure_ids(team_service, system_team.id) == [first.id, second.id]


async def test_delete_team_upstream_failure_keeps_reassignment(
    team_service, analysis_service, authority, monkeypatch
):
    team = await team_service.create_team("Operations")
    analysis = await analysis_service.upload_analysis("one", "1", team_id=team.id)

    async def _fail(*args, **kwargs):
        raise TeamAuthorityError("down")

    monkeypatch.setattr(authority, "remove_team", _fail)

    with pytest.raises(UpstreamError) as excinfo:
        await team_service.delete_team(team.id)

    assert str(excinfo.value).startswith("Failed to delete team: down")
    assert "1 analyses remain in team uncategorized" in str(excinfo.value)
    assert await team_service.get_team(team.id) is not None
    assert (await analysis_service.get_analysis(analysis.id)).team_id == "uncategorized"
    assert await _structure_ids(team_service, "uncategorized") == [analysis.id]
    assert team.id not in (await analysis_service.get_config()).team_structure


# ---------------------------------------------------------------------------
# Analysis assignment
# ---------------------------------------------------------------------------


async def test_move_analysis_to_team(team_service, analysis_service):
    source = await team_service.create_team("Source")
    target = await team_service.create_team("Target")
    analysis = await analysis_service.upload_analysis("script", "x", team_id=source.id)

    result = await team_service.move_analysis_to_team(analysis.id, target.id)

    assert result.from_team == source.id
    assert result.to_team == target.id
    assert result.analysis_name == "script"
    assert result.to_json_dict()["from"] == source.id
    assert await _structure_ids(team_service, source.id) == []
    assert await _structure_ids(team_service, target.id) == [analysis.id]
    assert (await analysis_service.get_analysis(analysis.id)).team_id == target.id


async def test_move_analysis_to_same_team_is_noop(team_service, analysis_service):
    team = await team_service.create_team("Source")
    analysis = await analysis_service.upload_analysis("script", "x", team_id=team.id)
    before = (await analysis_service.get_config()).team_structure[team.id]

    result = await team_service.move_analysis_to_team(analysis.id, team.id)

    assert result.from_team == team.id
    assert result.to_team == team.id
    after = (await analysis_service.get_config()).team_structure[team.id]
    assert after == before
    assert await _structure_ids(team_service, team.id) == [analysis.id]


async def test_move_analysis_errors(team_service, analysis_service):
    team = await team_service.create_team("Source")
    analysis = await analysis_service.upload_analysis("script", "x", team_id=team.id)

    with pytest.raises(NotFoundError, match="Analysis ghost not found"):
        await team_service.move_analysis_to_team("ghost", team.id)
    with pytest.raises(NotFoundError, match="Team ghost not found"):
        await team_service.move_analysis_to_team(analysis.id, "ghost")


async def test_get_analyses_by_team(team_service, analysis_service):
    team = await team_service.create_team("Ops")
    other = await team_service.create_team("Other")
    mine = await analysis_service.upload_analysis("mine", "x", team_id=team.id)
    await analysis_service.upload_analysis("theirs", "y", team_id=other.id)

    analyses = await team_service.get_analyses_by_team(team.id)

    assert [analysis.id for analysis in analyses] == [mine.id]
    assert await team_service.get_analysis_count_by_team_id(team.id) == 1


async def test_analysis_count_degrades_to_zero(team_service, analysis_service, monkeypatch):
    team = await team_service.create_team("Ops")
    await analysis_service.upload_analysis("mine", "x", team_id=team.id)

    async def _broken():
        raise OSError("disk gone")

    monkeypatch.setattr(analysis_service, "get_config", _broken)

    assert await team_service.get_analysis_count_by_team_id(team.id) == 0
    assert await team_service.get_analysis_count_by_team_id("nonexistent") == 0


async def test_ensure_analysis_has_team(team_service, analysis_service):
    analysis = await analysis_service.upload_analysis("script", "x")
    system_team = await team_service.get_system_team()

    def _clear(doc):
        doc.analyses[analysis.id].team_id = None
        doc.team_structure.clear()

    await analysis_service.update_config(_clear)

    assert await team_service.ensure_analysis_has_team(analysis.id) == system_team.id
    assert await team_service.ensure_analysis_has_team(analysis.id) is None
    assert (await analysis_service.get_analysis(analysis.id)).team_id == system_team.id
    assert await _structure_ids(team_service, system_team.id) == [analysis.id]


# ---------------------------------------------------------------------------
# Folder tree
# ---------------------------------------------------------------------------


async def test_folder_lifecycle(team_service, analysis_service):
    team = await team_service.create_team("Ops")
    analysis = await analysis_service.upload_analysis("script", "x", team_id=team.id)

    outer = await team_service.create_folder(team.id, None, "Outer")
    inner = await team_service.create_folder(team.id, outer.id, "Inner", expanded=True)
    moved = await team_service.move_item(team.id, analysis.id, inner.id, 0)

    assert moved.to == inner.id
    items = await team_service.get_team_structure(team.id)
    found = team_service.find_item_with_parent(items, analysis.id)
    assert found.parent.id == inner.id

    renamed = await team_service.update_folder(team.id, inner.id, name="Renamed")
    assert renamed.name == "Renamed"
    assert renamed.expanded is True

    result = await team_service.delete_folder(team.id, outer.id)
    assert result.deleted == outer.id
    assert result.children_moved == 1
    assert await _structure_ids(team_service, team.id) == [inner.id]


async def test_folder_errors(team_service):
    team = await team_service.create_team("Ops")
    outer = await team_service.create_folder(team.id, None, "Outer")
    inner = await team_service.create_folder(team.id, outer.id, "Inner")

    with pytest.raises(NotFoundError, match="Team ghost not found"):
        await team_service.create_folder("ghost", None, "x")
    with pytest.raises(NotFoundError, match="Parent folder nope not found"):
        await team_service.create_folder(team.id, "nope", "x")
    with pytest.raises(InvalidOperationError):
        await team_service.move_item(team.id, outer.id, inner.id, 0)
    with pytest.raises(InvalidOperationError):
        await team_service.move_item(team.id, outer.id, outer.id, 0)
    with pytest.raises(NotFoundError):
        await team_service.update_folder("ghost", outer.id, name="x")


async def test_failed_tree_edit_leaves_document_unchanged(team_service, analysis_service):
    team = await team_service.create_team("Ops")
    outer = await team_service.create_folder(team.id, None, "Outer")
    inner = await team_service.create_folder(team.id, outer.id, "Inner")
    before = await analysis_service.get_config()

    with pytest.raises(InvalidOperationError):
        await team_service.move_item(team.id, outer.id, inner.id, 0)

    assert await analysis_service.get_config() == before


async def test_add_and_remove_item_from_team_structure(team_service):
    await team_service.add_item_to_team_structure("fresh", AnalysisRef(id="a1"))

    assert await _structure_ids(team_service, "fresh") == ["a1"]
    with pytest.raises(ConflictError):
        await team_service.add_item_to_team_structure("fresh", AnalysisRef(id="a1"))

    assert await team_service.remove_item_from_team_structure("fresh", "a1") is True
    assert await team_service.remove_item_from_team_structure("fresh", "a1") is False
    assert await team_service.remove_item_from_team_structure("missing", "a1") is False
