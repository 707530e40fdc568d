"""Project status board: columns of projects moved by drag-and-drop."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID, uuid4

from studiodesk.auth import IdentityProvider
from studiodesk.config import BoardConfig
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import GatewayError, unwrap_envelope
from studiodesk.models import BoardColumn, Project, ProjectStatus
from studiodesk.mutation import MutationOutcome, OptimisticMutationController
from studiodesk.notifications import Notifier, describe_failure, error, success
from studiodesk.status_map import normalize_status, parse_status, to_column, to_durable

logger = logging.getLogger(__name__)


def project_from_row(row: dict[str, Any]) -> Project:
    return Project(
        id=row.get("project_uuid") or row["id"],
        title=row.get("project_title") or row.get("title") or "Untitled project",
        status=normalize_status(row.get("project_status", row.get("status"))),
        client_name=row.get("client_name"),
        event_type=row.get("event_type"),
        start_date=row.get("start_date") or None,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class ProjectBoard:
    """Local board state kept in step with the durable ``projects`` table."""

    def __init__(
        self,
        gateway: GatewayClient,
        identity: IdentityProvider,
        notifier: Notifier,
        config: BoardConfig | None = None,
    ):
        self.gateway = gateway
        self.identity = identity
        self.notifier = notifier
        self.config = config or BoardConfig()
        self.load_error: GatewayError | None = None  # Set while the last load failed
        self.controller: OptimisticMutationController[UUID, Project] = (
            OptimisticMutationController(
                notifier,
                reconcile=self._refresh_one if self.config.reconcile_after_mutation else None,
            )
        )

    @property
    def projects(self) -> list[Project]:
        return list(self.controller.entities.values())

    def get(self, project_id: UUID) -> Project:
        return self.controller.entities[project_id]

    async def load(self) -> list[Project]:
        """Fetch the owner's projects; keeps previous state and sets ``load_error`` on failure."""
        try:
            who = await self.identity.current()
            rows = await self.gateway.select(
                self.config.project_table,
                filters={"user_id": who.user_id},
                order=[("created_at", False)],
            )
        except GatewayError as exc:
            logger.error("board_load_failed: %s", exc.message)
            self.load_error = exc
            error(self.notifier, "Could not load projects", describe_failure(exc, "load projects"))
            return self.projects

        projects = [project_from_row(row) for row in rows]
        self.controller.reset({p.id: p for p in projects})
        self.load_error = None
        return projects

    def columns(self) -> dict[BoardColumn, list[Project]]:
        """Every column, in lifecycle order, with its projects."""
        grouped: dict[BoardColumn, list[Project]] = {column: [] for column in BoardColumn}
        for project in self.projects:
            grouped[to_column(project.status)].append(project)
        return grouped

    async def move(self, project_id: UUID, column: BoardColumn | str) -> MutationOutcome:
        """Drop a project card into ``column``."""
        return await self.set_status(project_id, to_durable(column))

    async def set_status(
        self, project_id: UUID, status: ProjectStatus, *, silent: bool = False
    ) -> MutationOutcome:
        return await self.controller.mutate(
            project_id,
            "status",
            status,
            self._persist_status,
            verify=parse_status,
            action="update the project status",
            silent=silent,
        )

    async def _persist_status(self, project_id: UUID, status: ProjectStatus) -> Any:
        data = await self.gateway.rpc(
            "update_project_status",
            {"p_project_uuid": str(project_id), "p_new_status": status.value},
        )
        envelope = unwrap_envelope(data, "update_project_status")
        return envelope.get("project_status", envelope.get("status"))

    async def _refresh_one(self, project_id: UUID) -> None:
        try:
            row = await self.gateway.select_one(
                self.config.project_table, filters={"project_uuid": str(project_id)}
            )
        except GatewayError as exc:
            logger.warning("board_reconcile_failed: %s %s", project_id, exc.message)
            return
        if row is not None and project_id in self.controller.entities:
            self.controller.entities[project_id] = project_from_row(row)

    async def create(
        self,
        title: str,
        *,
        client_name: str | None = None,
        event_type: str | None = None,
        start_date: str | None = None,
    ) -> Project | None:
        """Create a project remotely; the provisional id is replaced by the durable one."""
        provisional_id = uuid4()
        try:
            who = await self.identity.current()
            data = await self.gateway.rpc(
                "create_project",
                {
                    "p_client_reference": str(provisional_id),
                    "p_user_id": who.user_id,
                    "p_project_title": title,
                    "p_client_name": client_name,
                    "p_event_type": event_type,
                    "p_start_date": start_date,
                },
            )
            envelope = unwrap_envelope(data, "create_project")
        except GatewayError as exc:
            logger.error("project_create_failed: %s", exc.message)
            error(self.notifier, "Project not created", describe_failure(exc, "create the project"))
            return None

        project = Project(
            id=envelope.get("project_uuid") or provisional_id,
            title=title,
            status=normalize_status(envelope.get("project_status")),
            client_name=client_name,
            event_type=event_type,
            start_date=start_date or None,
        )
        self.controller.entities[project.id] = project
        success(self.notifier, "Project created", title)
        return project

    async def delete(self, project_id: UUID) -> bool:
        """Delete remotely first; the card disappears only once that succeeds."""
        try:
            await self.gateway.delete(
                self.config.project_table, filters={"project_uuid": str(project_id)}
            )
        except GatewayError as exc:
            logger.error("project_delete_failed: %s %s", project_id, exc.message)
            error(self.notifier, "Project not deleted", describe_failure(exc, "delete the project"))
            return False

        self.controller.entities.pop(project_id, None)
        return True

    def dispose(self) -> None:
        self.controller.dispose()
