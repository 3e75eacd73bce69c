"""
Projects API Endpoints

Kanban boards of the caller's tenant and their public sharing:
- boards, columns and cards
- share link enable / disable / regenerate
- guest invitations
"""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import get_db
from app.models.client import Client
from app.models.project import Project, ProjectColumn, ProjectCard
from app.schemas.project import (
    ProjectCreate,
    ProjectResponse,
    ColumnCreate,
    ColumnResponse,
    CardCreate,
    CardResponse,
    GuestInvite,
    GuestResponse,
    ShareAction,
    ShareStatusResponse,
)
from app.api.v1.deps import Tenancy
from app.services.exceptions import ServiceError, to_http_exception
from app.services.project_sharing import ProjectShareService, share_url

router = APIRouter()


async def get_board(project_id: UUID, tenant_id: UUID, db: AsyncSession) -> Project:
    result = await db.execute(
        select(Project)
        .options(selectinload(Project.columns).selectinload(ProjectColumn.cards))
        .where(
            Project.id == project_id,
            Project.tenant_id == tenant_id,
        )
        .execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if not project:
        raise HTTPException(
            status_code=404,
            detail={"code": "PROJECT_NOT_FOUND", "message": "Project not found"},
        )
    return project


def share_status(project: Project) -> ShareStatusResponse:
    return ShareStatusResponse(
        share_enabled=project.share_enabled,
        share_token=project.share_token,
        share_url=share_url(project) if project.share_token else None,
        guests=[GuestResponse.model_validate(g) for g in project.guests],
    )


@router.get("/projects", response_model=list[ProjectResponse])
async def list_projects(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(Project)
        .options(selectinload(Project.columns).selectinload(ProjectColumn.cards))
        .where(Project.tenant_id == ctx.tenant_id)
        .order_by(Project.created_at.desc())
    )
    return [ProjectResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    project_in: ProjectCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    if project_in.client_id:
        client_id = await db.scalar(
            select(Client.id).where(
                Client.id == project_in.client_id,
                Client.tenant_id == ctx.tenant_id,
            )
        )
        if client_id is None:
            raise HTTPException(
                status_code=404,
                detail={"code": "CLIENT_NOT_FOUND", "message": "Client not found"},
            )

    project = Project(
        tenant_id=ctx.tenant_id,
        client_id=project_in.client_id,
        name=project_in.name,
        description=project_in.description,
        color=project_in.color,
        share_enabled=False,
        columns=[
            ProjectColumn(name=name, position=position)
            for position, name in enumerate(project_in.columns)
        ],
    )
    db.add(project)
    await db.commit()

    project = await get_board(project.id, ctx.tenant_id, db)
    return ProjectResponse.model_validate(project)


@router.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    project = await get_board(project_id, ctx.tenant_id, db)
    return ProjectResponse.model_validate(project)


@router.post("/projects/{project_id}/columns", response_model=ColumnResponse, status_code=201)
async def create_column(
    project_id: UUID,
    column_in: ColumnCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    project = await get_board(project_id, ctx.tenant_id, db)
    column = ProjectColumn(
        project_id=project.id,
        name=column_in.name,
        color=column_in.color,
        position=len(project.columns),
        cards=[],
    )
    db.add(column)
    await db.commit()
    return ColumnResponse.model_validate(column)


@router.post("/projects/{project_id}/columns/{column_id}/cards", response_model=CardResponse, status_code=201)
async def create_card(
    project_id: UUID,
    column_id: UUID,
    card_in: CardCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    project = await get_board(project_id, ctx.tenant_id, db)
    column = next((c for c in project.columns if c.id == column_id), None)
    if column is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "COLUMN_NOT_FOUND", "message": "Column not found"},
        )

    next_position = await db.scalar(
        select(func.coalesce(func.max(ProjectCard.position) + 1, 0)).where(ProjectCard.column_id == column.id)
    )
    card = ProjectCard(
        column_id=column.id,
        title=card_in.title,
        description=card_in.description,
        priority=card_in.priority,
        due_date=card_in.due_date,
        position=next_position or 0,
        is_completed=False,
    )
    db.add(card)
    await db.commit()
    return CardResponse.model_validate(card)


# =============================================================================
# Sharing
# =============================================================================

@router.get("/projects/{project_id}/share", response_model=ShareStatusResponse)
async def get_share_status(
    project_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        project = await ProjectShareService(db, ctx.tenant_id).get_project(project_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    return share_status(project)


@router.post("/projects/{project_id}/share", response_model=ShareStatusResponse)
async def update_share(
    project_id: UUID,
    action_in: ShareAction,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """enable (creates the token on first use), disable, or regenerate the share link."""
    service = ProjectShareService(db, ctx.tenant_id)
    try:
        if action_in.action == "enable":
            project = await service.enable(project_id)
        elif action_in.action == "disable":
            project = await service.disable(project_id)
        else:
            project = await service.regenerate(project_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return share_status(project)


@router.post("/projects/{project_id}/guests", response_model=GuestResponse, status_code=201)
async def invite_guest(
    project_id: UUID,
    guest_in: GuestInvite,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        guest = await ProjectShareService(db, ctx.tenant_id).invite_guest(
            project_id, guest_in.email, guest_in.name
        )
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return GuestResponse.model_validate(guest)


@router.delete("/projects/{project_id}/guests/{guest_id}", status_code=204)
async def remove_guest(
    project_id: UUID,
    guest_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await ProjectShareService(db, ctx.tenant_id).remove_guest(project_id, guest_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return None
