from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from ...database import get_db
from ...core.errors import NotFoundError, TransientStoreFailure
from ...services.projection_service import (
    BacklogProjectionService,
    ProjectBacklogView,
    ProjectDashboard,
)

router = APIRouter()


@router.get("/{project_id}/backlog", response_model=ProjectBacklogView)
async def get_project_backlog(
    project_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Get the full epic / feature / story / task tree of a project"""

    projection_service = BacklogProjectionService(db)

    try:
        return await projection_service.get_project_backlog(project_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/{project_id}/dashboard", response_model=ProjectDashboard)
async def get_project_dashboard(
    project_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Get totals, burnup series and recent activity for a project"""

    projection_service = BacklogProjectionService(db)

    try:
        return await projection_service.get_dashboard(project_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
