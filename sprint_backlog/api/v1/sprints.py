from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date
from uuid import UUID
from pydantic import BaseModel, Field

from ...database import get_db
from ...core.errors import InvalidRequestError, NotFoundError, TransientStoreFailure
from ...models.sprint import SprintStatus
from ...services.projection_service import BacklogProjectionService, BacklogStoryView, SprintView
from ...services.sprint_service import SprintService

router = APIRouter()


class CreateSprintRequest(BaseModel):
    name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    story_ids: Optional[List[UUID]] = None


class UpdateSprintStoriesRequest(BaseModel):
    story_ids: List[UUID] = Field(..., description="Complete ordered membership of the sprint")


class ReorderSprintStoriesRequest(BaseModel):
    ordered_story_ids: List[UUID]


class UpdateSprintStatusRequest(BaseModel):
    status: SprintStatus


@router.get("/projects/{project_id}/sprints", response_model=List[SprintView])
async def get_sprints(
    project_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Get all sprints of a project with their stories in priority order"""

    projection_service = BacklogProjectionService(db)

    try:
        return await projection_service.get_sprints(project_id)
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/projects/{project_id}/sprints/backlog-stories", response_model=List[BacklogStoryView])
async def get_backlog_stories(
    project_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Get every story of a project with its sprint membership"""

    projection_service = BacklogProjectionService(db)

    try:
        return await projection_service.get_backlog_stories(project_id)
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/projects/{project_id}/sprints", response_model=SprintView, status_code=201)
async def create_sprint(
    project_id: UUID,
    request: CreateSprintRequest,
    db: AsyncSession = Depends(get_db)
):
    """Create a sprint, optionally pre-populated with stories"""

    sprint_service = SprintService(db)

    try:
        return await sprint_service.create_sprint(
            project_id=project_id,
            name=request.name,
            start_date=request.start_date,
            end_date=request.end_date,
            story_ids=request.story_ids
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.delete("/sprints/{sprint_id}", status_code=204)
async def delete_sprint(
    sprint_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Delete a sprint; its stories return to the unassigned backlog"""

    sprint_service = SprintService(db)

    try:
        await sprint_service.delete_sprint(sprint_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/sprints/{sprint_id}/stories", status_code=204)
async def update_sprint_stories(
    sprint_id: UUID,
    request: UpdateSprintStoriesRequest,
    db: AsyncSession = Depends(get_db)
):
    """Replace the set of stories in a sprint"""

    sprint_service = SprintService(db)

    try:
        await sprint_service.replace_stories(sprint_id, request.story_ids)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/sprints/{sprint_id}/stories/reorder", status_code=204)
async def reorder_sprint_stories(
    sprint_id: UUID,
    request: ReorderSprintStoriesRequest,
    db: AsyncSession = Depends(get_db)
):
    """Reorder stories within a sprint"""

    sprint_service = SprintService(db)

    try:
        await sprint_service.reorder(sprint_id, request.ordered_story_ids)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/sprints/{sprint_id}/status", response_model=SprintView)
async def update_sprint_status(
    sprint_id: UUID,
    request: UpdateSprintStatusRequest,
    db: AsyncSession = Depends(get_db)
):
    """Move a sprint to another lifecycle status"""

    sprint_service = SprintService(db)

    try:
        return await sprint_service.update_sprint_status(sprint_id, request.status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
