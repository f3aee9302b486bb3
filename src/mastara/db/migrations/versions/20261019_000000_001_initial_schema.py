"""Initial identity schema.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Creates:
- extensions: pg_uuidv7 (time-ordered primary keys)
- clinics (tenant root)
- profiles with per-clinic partial unique indexes on phone and email
- employees, roles, permissions, role_permissions, employee_roles (IAM)
- audit_log plus the log_change() trigger reading app.audit_context
- trigger_set_timestamp() keeping updated_at current
- seeded permission keys
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

AUDITED_TABLES = ("profiles", "employees", "roles")
TIMESTAMPED_TABLES = ("clinics", "profiles", "employees", "roles")

PERMISSIONS = [
    (1, "employees.invite"),
    (2, "employees.read"),
    (3, "employees.update"),
    (4, "employees.deactivate"),
    (10, "patients.create"),
    (11, "patients.read"),
    (12, "patients.update"),
    (13, "patients.delete"),
    (20, "appointments.create"),
    (21, "appointments.read"),
    (22, "appointments.update"),
    (23, "appointments.delete"),
    (30, "finance.invoice.create"),
    (31, "finance.invoice.read"),
    (32, "finance.payment.record"),
    (33, "finance.reports.view"),
    (40, "roles.create"),
    (41, "roles.read"),
    (42, "roles.update"),
    (43, "roles.delete"),
]

SET_TIMESTAMP_FUNCTION = """
CREATE OR REPLACE FUNCTION trigger_set_timestamp()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

# Employees are keyed by profile_id, every other audited table by id
LOG_CHANGE_FUNCTION = """
CREATE OR REPLACE FUNCTION log_change()
RETURNS TRIGGER AS $$
DECLARE
    ctx JSONB;
    row_doc JSONB;
BEGIN
    BEGIN
        ctx := COALESCE(NULLIF(current_setting('app.audit_context', true), '')::jsonb, '{}'::jsonb);
    EXCEPTION WHEN OTHERS THEN
        ctx := '{}'::jsonb;
    END;

    IF (TG_OP = 'DELETE') THEN
        row_doc := to_jsonb(OLD);
    ELSE
        row_doc := to_jsonb(NEW);
    END IF;

    INSERT INTO audit_log (
        clinic_id, user_id, action, table_name, record_id, old_record, new_record
    ) VALUES (
        (ctx->>'clinic_id')::uuid,
        (ctx->>'user_id')::uuid,
        TG_OP,
        TG_TABLE_NAME,
        COALESCE(row_doc->>'id', row_doc->>'profile_id')::uuid,
        CASE WHEN TG_OP IN ('UPDATE', 'DELETE') THEN to_jsonb(OLD) END,
        CASE WHEN TG_OP IN ('UPDATE', 'INSERT') THEN to_jsonb(NEW) END
    );
    RETURN COALESCE(NEW, OLD);
END;
$$ LANGUAGE plpgsql;
"""


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _uuid_pk(name: str = "id") -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("uuid_generate_v7()"),
        nullable=False,
    )


def upgrade() -> None:
    """Apply migration: initial identity schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_uuidv7"')

    profile_status = postgresql.ENUM(
        "GUEST", "REGISTERED", "ARCHIVED", name="profile_status", create_type=False
    )
    profile_status.create(op.get_bind(), checkfirst=True)

    employee_status = postgresql.ENUM(
        "INVITED",
        "ACTIVE",
        "SUSPENDED",
        "TERMINATED",
        name="employee_status",
        create_type=False,
    )
    employee_status.create(op.get_bind(), checkfirst=True)

    op.execute(SET_TIMESTAMP_FUNCTION)

    # =========================================================================
    # Tenants
    # =========================================================================
    op.create_table(
        "clinics",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("address_line1", sa.Text(), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("country_code", sa.CHAR(2), nullable=False),
        sa.Column("timezone", sa.String(100), server_default=sa.text("'UTC'"), nullable=False),
        sa.Column(
            "settings",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_clinics")),
    )
    op.create_index(
        "uq_clinics_email_active",
        "clinics",
        ["email"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    # =========================================================================
    # Profiles
    # =========================================================================
    op.create_table(
        "profiles",
        _uuid_pk(),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("national_id", sa.String(100), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column(
            "profile_status",
            profile_status,
            server_default="GUEST",
            nullable=False,
        ),
        sa.Column(
            "extended_data",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name=op.f("ck_profiles_profile_contact_method"),
        ),
        sa.ForeignKeyConstraint(
            ["clinic_id"],
            ["clinics.id"],
            name=op.f("fk_profiles_clinic_id_clinics"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_profiles")),
    )
    op.create_index(
        "uq_profiles_clinic_phone_active",
        "profiles",
        ["clinic_id", "phone_number"],
        unique=True,
        postgresql_where=sa.text("phone_number IS NOT NULL AND deleted_at IS NULL"),
    )
    op.create_index(
        "uq_profiles_clinic_email_active",
        "profiles",
        ["clinic_id", "email"],
        unique=True,
        postgresql_where=sa.text("email IS NOT NULL AND deleted_at IS NULL"),
    )
    op.create_index("ix_profiles_clinic_created", "profiles", ["clinic_id", "created_at"])

    # =========================================================================
    # IAM
    # =========================================================================
    op.create_table(
        "employees",
        sa.Column("profile_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_title", sa.String(100), nullable=True),
        sa.Column("employment_start_date", sa.Date(), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("status", employee_status, server_default="INVITED", nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invited_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(status != 'INVITED' AND password_hash IS NOT NULL) OR (status = 'INVITED')",
            name=op.f("ck_employees_password_for_active_employee"),
        ),
        sa.ForeignKeyConstraint(
            ["profile_id"],
            ["profiles.id"],
            name=op.f("fk_employees_profile_id_profiles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["clinic_id"],
            ["clinics.id"],
            name=op.f("fk_employees_clinic_id_clinics"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["invited_by"],
            ["employees.profile_id"],
            name=op.f("fk_employees_invited_by_employees"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("profile_id", name=op.f("pk_employees")),
    )

    op.create_table(
        "permissions",
        sa.Column("id", sa.SmallInteger(), nullable=False),
        sa.Column("permission_key", sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_permissions")),
        sa.UniqueConstraint("permission_key", name=op.f("uq_permissions_permission_key")),
    )

    op.create_table(
        "roles",
        _uuid_pk(),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system_role", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "(is_system_role AND clinic_id IS NULL) OR (NOT is_system_role)",
            name=op.f("ck_roles_system_role_clinic_id"),
        ),
        sa.ForeignKeyConstraint(
            ["clinic_id"],
            ["clinics.id"],
            name=op.f("fk_roles_clinic_id_clinics"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_roles")),
    )
    op.create_index(
        "uq_roles_clinic_name_active",
        "roles",
        ["clinic_id", "name"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "role_permissions",
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("permission_id", sa.SmallInteger(), nullable=False),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["roles.id"],
            name=op.f("fk_role_permissions_role_id_roles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["permission_id"],
            ["permissions.id"],
            name=op.f("fk_role_permissions_permission_id_permissions"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("role_id", "permission_id", name=op.f("pk_role_permissions")),
    )

    op.create_table(
        "employee_roles",
        sa.Column("employee_profile_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["employee_profile_id"],
            ["employees.profile_id"],
            name=op.f("fk_employee_roles_employee_profile_id_employees"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["role_id"],
            ["roles.id"],
            name=op.f("fk_employee_roles_role_id_roles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint(
            "employee_profile_id", "role_id", name=op.f("pk_employee_roles")
        ),
    )

    # =========================================================================
    # Audit
    # =========================================================================
    op.create_table(
        "audit_log",
        _uuid_pk(),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("table_name", sa.Text(), nullable=False),
        sa.Column("record_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("old_record", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_record", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_log")),
    )
    op.create_index("ix_audit_log_clinic_id", "audit_log", ["clinic_id"])
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("ix_audit_log_table_record", "audit_log", ["table_name", "record_id"])

    op.execute(LOG_CHANGE_FUNCTION)

    for table in AUDITED_TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_audit_trigger "
            f"AFTER INSERT OR UPDATE OR DELETE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION log_change()"
        )
    for table in TIMESTAMPED_TABLES:
        op.execute(
            f"CREATE TRIGGER set_timestamp BEFORE UPDATE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION trigger_set_timestamp()"
        )

    permissions = sa.table(
        "permissions",
        sa.column("id", sa.SmallInteger()),
        sa.column("permission_key", sa.String()),
    )
    op.bulk_insert(
        permissions,
        [{"id": pid, "permission_key": key} for pid, key in PERMISSIONS],
    )


def downgrade() -> None:
    """Revert migration: initial identity schema."""
    # Reverse order, respecting foreign key dependencies
    op.drop_table("audit_log")
    op.drop_table("employee_roles")
    op.drop_table("role_permissions")
    op.drop_table("roles")
    op.drop_table("permissions")
    op.drop_table("employees")
    op.drop_table("profiles")
    op.drop_table("clinics")

    op.execute("DROP FUNCTION IF EXISTS log_change()")
    op.execute("DROP FUNCTION IF EXISTS trigger_set_timestamp()")

    op.execute("DROP TYPE IF EXISTS employee_status")
    op.execute("DROP TYPE IF EXISTS profile_status")
