from fastapi import APIRouter

from hirepipe.api.routes import activity
from hirepipe.api.routes import applications
from hirepipe.api.routes import sla
from hirepipe.api.routes import stage_templates
from hirepipe.api.routes import stages

api_router = APIRouter()
api_router.include_router(stages.router)
api_router.include_router(stage_templates.router)
api_router.include_router(applications.router)
api_router.include_router(sla.router)
api_router.include_router(activity.router)
