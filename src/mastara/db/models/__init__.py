"""SQLAlchemy ORM models for Mastara.

This package contains all database models organized by domain:
- base: Common metadata, annotated column types, and enums
- clinics: Tenant root
- profiles: Canonical person records
- iam: Employees, roles, permissions, and the audit log
"""

from mastara.db.models.base import Base, EmployeeStatus, ProfileStatus, metadata
from mastara.db.models.clinics import Clinic
from mastara.db.models.iam import (
    AuditLogEntry,
    Employee,
    Permission,
    Role,
    employee_roles,
    role_permissions,
)
from mastara.db.models.profiles import Profile

__all__ = [
    "AuditLogEntry",
    "Base",
    "Clinic",
    "Employee",
    "EmployeeStatus",
    "Permission",
    "Profile",
    "ProfileStatus",
    "Role",
    "employee_roles",
    "metadata",
    "role_permissions",
]
