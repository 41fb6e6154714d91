from fastapi import APIRouter
from .projects import router as projects_router
from .sprints import router as sprints_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(sprints_router, tags=["sprints"])
