"""Mastara - multi-tenant clinic identity core.

Transactional unit-of-work orchestration and race-safe guest onboarding
for staff and patient profiles, backed by PostgreSQL.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
