"""
Project board sharing.

A board is shared read-only through its share_token while share_enabled is
set. Guests are invited by e-mail and receive their own opaque guest token.
"""
import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.models.project import Project, ProjectGuest
from app.services.exceptions import NotFoundError, ValidationError
from app.services.public_access import generate_public_token

logger = logging.getLogger(__name__)


def share_url(project: Project) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/shared/project/{project.share_token}"


class ProjectShareService:
    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def get_project(self, project_id: UUID) -> Project:
        result = await self.db.execute(
            select(Project)
            .options(selectinload(Project.guests))
            .where(
                Project.id == project_id,
                Project.tenant_id == self.tenant_id,
            )
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if not project:
            raise NotFoundError("Project not found", code="PROJECT_NOT_FOUND")
        return project

    async def enable(self, project_id: UUID) -> Project:
        """Enable sharing, creating a share token on first use."""
        project = await self.get_project(project_id)
        if not project.share_token:
            project.share_token = generate_public_token()
        project.share_enabled = True
        await self.db.flush()
        return project

    async def disable(self, project_id: UUID) -> Project:
        """Disable sharing. The token is kept so re-enabling restores the same link."""
        project = await self.get_project(project_id)
        project.share_enabled = False
        await self.db.flush()
        return project

    async def regenerate(self, project_id: UUID) -> Project:
        """Replace the share token; the previous link stops working."""
        project = await self.get_project(project_id)
        project.share_token = generate_public_token()
        project.share_enabled = True
        await self.db.flush()
        logger.info(
            "Project share token regenerated",
            extra={"event": "share_token_regenerated", "project_id": str(project.id)},
        )
        return project

    async def list_guests(self, project_id: UUID) -> List[ProjectGuest]:
        project = await self.get_project(project_id)
        return list(project.guests)

    async def invite_guest(self, project_id: UUID, email: str, name: str = None) -> ProjectGuest:
        """Invite an e-mail address on the board. Re-inviting returns the existing guest."""
        project = await self.get_project(project_id)
        normalized = (email or "").strip().lower()
        if not normalized:
            raise ValidationError("Email is required", code="EMAIL_REQUIRED")

        for guest in project.guests:
            if guest.email == normalized:
                return guest

        guest = ProjectGuest(
            email=normalized,
            name=name,
            token=generate_public_token(),
        )
        project.guests.append(guest)
        await self.db.flush()
        return guest

    async def remove_guest(self, project_id: UUID, guest_id: UUID) -> None:
        project = await self.get_project(project_id)
        guest = next((g for g in project.guests if g.id == guest_id), None)
        if guest is None:
            raise NotFoundError("Guest not found", code="GUEST_NOT_FOUND")
        # delete-orphan cascade removes the row
        project.guests.remove(guest)
        await self.db.flush()
