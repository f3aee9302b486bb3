"""Mastara services.

- upsert: race-safe guest find-or-create
- profile_store: tenant-scoped profile reads and writes
- lifecycle: profile state machine and unit-of-work operations
- iam: employee permission resolution
- employees: staff invitation
"""
