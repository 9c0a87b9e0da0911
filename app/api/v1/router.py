from fastapi import APIRouter
from api.v1.routes.analytics import router as analytics_router
from api.v1.routes.callbacks import router as callbacks_router
from api.v1.routes.campaigns import router as campaigns_router
from api.v1.routes.notifications import router as notifications_router
from api.v1.routes.preferences import router as preferences_router
from api.v1.routes.realtime import router as realtime_router
from api.v1.routes.schedules import router as schedules_router
from api.v1.routes.templates import router as templates_router
from api.v1.routes.toggles import router as toggles_router


router = APIRouter()
router.include_router(notifications_router)
router.include_router(realtime_router)
router.include_router(preferences_router)
router.include_router(templates_router)
router.include_router(campaigns_router)
router.include_router(schedules_router)
router.include_router(analytics_router)
router.include_router(callbacks_router)
router.include_router(toggles_router)
