"""API routers."""

from clinic_scheduling.routers.appointments import router as appointments_router
from clinic_scheduling.routers.availability import router as availability_router

__all__ = [
    "appointments_router",
    "availability_router",
]
