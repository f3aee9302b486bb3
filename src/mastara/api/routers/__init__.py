"""Mastara API routers.

- employees: staff invitation (permission checked)
- patients: staff operations on patient profiles (permission checked)
- public: unauthenticated fast-booking endpoints
"""

from mastara.api.routers.employees import router as employees_router
from mastara.api.routers.patients import router as patients_router
from mastara.api.routers.public import router as public_router

__all__ = [
    "employees_router",
    "patients_router",
    "public_router",
]
