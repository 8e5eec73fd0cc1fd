"""
Team Service - team CRUD through the team-membership authority, analysis
assignment to teams, and the per-team folder tree.

Tree edits load the config document, run one of the algorithms in
``analysis_worker.teams.tree`` on the team's items and write the document
back in the same ``update_config`` call.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

from analysis_worker.analyses.models import ConfigDocument
from analysis_worker.config import settings
from analysis_worker.core.errors import (
    ConflictError,
    InitializationError,
    InvalidOperationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from analysis_worker.core.logging import get_logger
from analysis_worker.teams import tree
from analysis_worker.teams.authority import (
    TeamAuthority,
    TeamAuthorityError,
    build_team_authority,
)
from analysis_worker.teams.models import (
    UNCATEGORIZED_TEAM_ID,
    UNCATEGORIZED_TEAM_NAME,
    AnalysisRef,
    DeleteFolderResult,
    DeleteTeamResult,
    FindItemResult,
    Folder,
    MoveAnalysisResult,
    MoveItemResult,
    Team,
    TeamStructure,
)

logger = get_logger(__name__)


class ConfigProvider(Protocol):
    """Anything exposing the Config Store contract (the store or a facade)."""

    async def get_config(self) -> ConfigDocument: ...

    async def update_config(self, change: Any) -> Any: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _team_sort_key(team: Team) -> tuple[int, bool, str]:
    return (team.order_index, not team.is_system, team.name)


class TeamService:
    def __init__(self, authority: TeamAuthority | None = None) -> None:
        self._authority = authority
        self._analysis_service: ConfigProvider | None = None
        self._organization_id: str | None = None
        self._initialized = False

    @property
    def organization_id(self) -> str | None:
        return self._organization_id

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        analysis_service: ConfigProvider,
        authority: TeamAuthority | None = None,
    ) -> None:
        """Bind the config provider and load the organization. Idempotent."""
        if self._initialized:
            return

        if authority is not None:
            self._authority = authority
        if self._authority is None:
            self._authority = build_team_authority()
        self._analysis_service = analysis_service

        slug = settings.organization_slug
        try:
            organization_id = await self._authority.get_organization_id(slug)
        except TeamAuthorityError as exc:
            logger.error("Failed to load organization '%s': %s", slug, exc)
            raise InitializationError(f"Failed to load organization: {exc}") from exc

        if not organization_id:
            logger.error("Organization '%s' not found in team authority", slug)
            raise InitializationError("Main organization not found")

        self._organization_id = organization_id
        try:
            await self._ensure_system_team()
        except TeamAuthorityError as exc:
            raise InitializationError(f"Failed to create system team: {exc}") from exc
        self._initialized = True
        logger.info("Team service initialized (organization %s)", organization_id)

    def reset(self) -> None:
        """Forget the bound organization and collaborators."""
        self._authority = None
        self._analysis_service = None
        self._organization_id = None
        self._initialized = False

    def _require_organization(self) -> tuple[TeamAuthority, str]:
        if self._authority is None or self._organization_id is None:
            raise InitializationError("Team service is not initialized")
        return self._authority, self._organization_id

    def _require_config(self) -> ConfigProvider:
        if self._analysis_service is None:
            raise InitializationError("Team service is not initialized")
        return self._analysis_service

    async def _ensure_system_team(self) -> None:
        authority, organization_id = self._require_organization()
        teams = await authority.list_teams(organization_id)
        if any(team.is_system for team in teams):
            return
        team = await authority.create_team(
            organization_id,
            name=UNCATEGORIZED_TEAM_NAME,
            color="#9CA3AF",
            order_index=0,
            is_system=True,
            team_id=UNCATEGORIZED_TEAM_ID,
        )
        logger.info("Created system team '%s' (%s)", team.name, team.id)

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def get_all_teams(self) -> list[Team]:
        authority, organization_id = self._require_organization()
        try:
            teams = await authority.list_teams(organization_id)
        except TeamAuthorityError as exc:
            raise UpstreamError(f"Failed to load teams: {exc}") from exc
        teams.sort(key=_team_sort_key)
        logger.debug("Retrieved %d team(s)", len(teams))
        return teams

    async def get_team(self, team_id: str) -> Team | None:
        for team in await self.get_all_teams():
            if team.id == team_id:
                return team
        return None

    async def get_system_team(self) -> Team | None:
        teams = await self.get_all_teams()
        for team in teams:
            if team.is_system:
                return team
        for team in teams:
            if team.name == UNCATEGORIZED_TEAM_NAME:
                return team
        return None

    async def _system_team_id(self) -> str:
        system_team = await self.get_system_team()
        return system_team.id if system_team else UNCATEGORIZED_TEAM_ID

    async def create_team(
        self,
        name: str,
        color: str | None = None,
        order: int | None = None,
    ) -> Team:
        authority, organization_id = self._require_organization()
        logger.info("Creating team '%s'", name)

        teams = await self.get_all_teams()
        if any(team.name == name for team in teams):
            raise ConflictError(f'Team with name "{name}" already exists')

        try:
            team = await authority.create_team(
                organization_id,
                name=name,
                color=color or settings.default_team_color,
                order_index=order if order is not None else len(teams),
                is_system=False,
            )
        except TeamAuthorityError as exc:
            logger.error("Failed to create team '%s': %s", name, exc)
            raise UpstreamError(f"Failed to create team: {exc}") from exc

        logger.info("Created team '%s' (%s)", team.name, team.id)
        return team

    async def update_team(
        self,
        team_id: str,
        name: str | None = None,
        color: str | None = None,
        order: int | None = None,
    ) -> Team:
        authority, organization_id = self._require_organization()

        teams = await self.get_all_teams()
        existing = next((team for team in teams if team.id == team_id), None)
        if existing is None:
            raise NotFoundError(f"Team {team_id} not found")

        fields: dict[str, Any] = {}
        if name is not None:
            fields["name"] = name
        if color is not None:
            fields["color"] = color
        if order is not None:
            fields["order_index"] = order
        if not fields:
            raise ValidationError("No valid fields to update")

        if name is not None and any(
            team.name == name and team.id != team_id for team in teams
        ):
            raise ConflictError(f'Team with name "{name}" already exists')

        try:
            updated = await authority.update_team(organization_id, team_id, fields)
        except TeamAuthorityError as exc:
            logger.error("Failed to update team %s: %s", team_id, exc)
            raise UpstreamError(f"Failed to update team: {exc}") from exc
        if updated is None:
            raise NotFoundError(f"Team {team_id} not found")

        logger.info("Updated team %s: %s", team_id, sorted(fields))
        return updated

    async def delete_team(self, team_id: str) -> DeleteTeamResult:
        """Delete a team after moving its analyses to the system team."""
        authority, organization_id = self._require_organization()

        team = await self.get_team(team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        if team.is_system:
            raise InvalidOperationError("Cannot delete system team")

        system_team_id = await self._system_team_id()
        moved = await self._reassign_team_analyses(team_id, system_team_id)

        try:
            await authority.remove_team(organization_id, team_id)
        except TeamAuthorityError as exc:
            logger.error(
                "FAILED to delete team %s: %s (%d analyses stay reassigned to %s)",
                team_id,
                exc,
                moved,
                system_team_id,
            )
            raise UpstreamError(
                f"Failed to delete team: {exc}. "
                f"{moved} analyses remain in team {system_team_id}"
            ) from exc

        logger.info(
            "Deleted team '%s' (%s), %d analyses moved", team.name, team_id, moved
        )
        return DeleteTeamResult(deleted=team_id, name=team.name, analyses_moved=moved)

    async def _reassign_team_analyses(self, team_id: str, target_team_id: str) -> int:
        def _reassign(document: ConfigDocument) -> int:
            now = _utc_now()
            moved_ids: list[str] = []
            for record in document.analyses.values():
                if record.team_id == team_id:
                    record.team_id = target_team_id
                    record.updated_at = now
                    moved_ids.append(record.id)

            old_structure = document.team_structure.pop(team_id, None)
            ordered = tree.collect_analysis_ids(old_structure.items) if old_structure else []
            ordered += [analysis_id for analysis_id in moved_ids if analysis_id not in ordered]

            destination = document.team_structure.setdefault(
                target_team_id, TeamStructure()
            ).items
            for analysis_id in ordered:
                if analysis_id in moved_ids and tree.find_item_by_id(destination, analysis_id) is None:
                    destination.append(AnalysisRef(id=analysis_id))
            return len(moved_ids)

        return await self._require_config().update_config(_reassign)

    async def reorder_teams(self, team_ids: list[str]) -> list[Team]:
        authority, organization_id = self._require_organization()
        logger.info("Reordering %d team(s)", len(team_ids))
        try:
            for index, team_id in enumerate(team_ids):
                updated = await authority.update_team(
                    organization_id, team_id, {"order_index": index}
                )
                if updated is None:
                    logger.warning("Skipping unknown team %s during reorder", team_id)
        except TeamAuthorityError as exc:
            raise UpstreamError(f"Failed to reorder teams: {exc}") from exc
        return await self.get_all_teams()

    # ------------------------------------------------------------------
    # Analysis assignment
    # ------------------------------------------------------------------

    async def get_analyses_by_team(self, team_id: str) -> list[Any]:
        if await self.get_team(team_id) is None:
            raise NotFoundError(f"Team {team_id} not found")
        document = await self._require_config().get_config()
        return [
            record for record in document.analyses.values() if record.team_id == team_id
        ]

    async def get_analysis_count_by_team_id(self, team_id: str) -> int:
        try:
            return len(await self.get_analyses_by_team(team_id))
        except Exception as exc:
            logger.warning("Error getting analysis count for team %s: %s", team_id, exc)
            return 0

    async def move_analysis_to_team(
        self, analysis_id: str, team_id: str
    ) -> MoveAnalysisResult:
        config = self._require_config()
        document = await config.get_config()
        analysis = document.analyses.get(analysis_id)
        if analysis is None:
            raise NotFoundError(f"Analysis {analysis_id} not found")
        if await self.get_team(team_id) is None:
            raise NotFoundError(f"Team {team_id} not found")

        if analysis.team_id == team_id:
            logger.info("Analysis %s already in team %s", analysis_id, team_id)
            return MoveAnalysisResult(
                analysis_id=analysis_id,
                analysis_name=analysis.name,
                from_team=team_id,
                to_team=team_id,
            )

        def _move(doc: ConfigDocument) -> MoveAnalysisResult:
            record = doc.analyses.get(analysis_id)
            if record is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            previous = record.team_id
            record.team_id = team_id
            record.updated_at = _utc_now()

            if previous and previous in doc.team_structure:
                tree.remove_analysis_ref(doc.team_structure[previous].items, analysis_id)
            items = doc.team_structure.setdefault(team_id, TeamStructure()).items
            if tree.find_item_by_id(items, analysis_id) is None:
                items.append(AnalysisRef(id=analysis_id))
            return MoveAnalysisResult(
                analysis_id=analysis_id,
                analysis_name=record.name,
                from_team=previous,
                to_team=team_id,
            )

        result = await config.update_config(_move)
        logger.info(
            "Moved analysis %s from team %s to team %s",
            analysis_id,
            result.from_team,
            team_id,
        )
        return result

    async def ensure_analysis_has_team(self, analysis_id: str) -> str | None:
        """Assign the system team to an analysis without one.

        Returns the assigned team id, or None when nothing changed.
        """
        system_team_id = await self._system_team_id()

        def _ensure(doc: ConfigDocument) -> str | None:
            record = doc.analyses.get(analysis_id)
            if record is None or record.team_id:
                return None
            record.team_id = system_team_id
            items = doc.team_structure.setdefault(system_team_id, TeamStructure()).items
            if tree.find_item_by_id(items, analysis_id) is None:
                items.append(AnalysisRef(id=analysis_id))
            return system_team_id

        assigned = await self._require_config().update_config(_ensure)
        if assigned:
            logger.info("Assigned analysis %s to team %s", analysis_id, assigned)
        return assigned

    # ------------------------------------------------------------------
    # Folder tree
    # ------------------------------------------------------------------

    traverse_tree = staticmethod(tree.traverse_tree)
    find_item_by_id = staticmethod(tree.find_item_by_id)

    @staticmethod
    def find_item_with_parent(items: list[Any], item_id: str) -> FindItemResult:
        return tree.find_item_with_parent(items, item_id)

    async def get_team_structure(self, team_id: str) -> list[Any]:
        document = await self._require_config().get_config()
        structure = document.team_structure.get(team_id)
        return list(structure.items) if structure else []

    async def add_item_to_team_structure(
        self,
        team_id: str,
        item: AnalysisRef | Folder,
        parent_id: str | None = None,
    ) -> None:
        def _add(doc: ConfigDocument) -> None:
            items = doc.team_structure.setdefault(team_id, TeamStructure()).items
            tree.add_item(items, item, parent_id)

        await self._require_config().update_config(_add)
        logger.info("Added %s %s to team %s", item.type, item.id, team_id)

    async def remove_item_from_team_structure(
        self, team_id: str, analysis_id: str
    ) -> bool:
        def _remove(doc: ConfigDocument) -> bool:
            structure = doc.team_structure.get(team_id)
            if structure is None:
                return False
            return tree.remove_analysis_ref(structure.items, analysis_id)

        removed = await self._require_config().update_config(_remove)
        logger.info(
            "Removed analysis %s from team %s structure: %s", analysis_id, team_id, removed
        )
        return removed

    def _structure_items(self, doc: ConfigDocument, team_id: str) -> list[Any]:
        structure = doc.team_structure.get(team_id)
        if structure is None:
            raise NotFoundError(f"Team {team_id} not found in structure")
        return structure.items

    async def create_folder(
        self,
        team_id: str,
        parent_id: str | None,
        name: str,
        expanded: bool = False,
    ) -> Folder:
        if await self.get_team(team_id) is None:
            raise NotFoundError(f"Team {team_id} not found")

        folder = tree.new_folder(name, expanded=expanded)

        def _create(doc: ConfigDocument) -> None:
            items = doc.team_structure.setdefault(team_id, TeamStructure()).items
            tree.add_item(items, folder, parent_id)

        await self._require_config().update_config(_create)
        logger.info(
            "Created folder '%s' (%s) in team %s under %s",
            name,
            folder.id,
            team_id,
            parent_id or "root",
        )
        return folder

    async def update_folder(
        self,
        team_id: str,
        folder_id: str,
        name: str | None = None,
        expanded: bool | None = None,
    ) -> Folder:
        def _update(doc: ConfigDocument) -> Folder:
            folder = tree.update_folder(
                self._structure_items(doc, team_id), folder_id, name, expanded
            )
            return folder.model_copy(deep=True)

        folder = await self._require_config().update_config(_update)
        logger.info("Updated folder %s in team %s", folder_id, team_id)
        return folder

    async def delete_folder(self, team_id: str, folder_id: str) -> DeleteFolderResult:
        def _delete(doc: ConfigDocument) -> int:
            return tree.delete_folder(self._structure_items(doc, team_id), folder_id)

        children_moved = await self._require_config().update_config(_delete)
        logger.info(
            "Deleted folder %s in team %s, %d children moved",
            folder_id,
            team_id,
            children_moved,
        )
        return DeleteFolderResult(deleted=folder_id, children_moved=children_moved)

    async def move_item(
        self,
        team_id: str,
        item_id: str,
        target_folder_id: str | None,
        position: int = 0,
    ) -> MoveItemResult:
        def _move(doc: ConfigDocument) -> MoveItemResult:
            return tree.move_item(
                self._structure_items(doc, team_id), item_id, target_folder_id, position
            )

        result = await self._require_config().update_config(_move)
        logger.info(
            "Moved item %s in team %s to %s at %d", item_id, team_id, result.to, position
        )
        return result


team_service = TeamService()
