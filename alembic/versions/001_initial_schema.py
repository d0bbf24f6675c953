"""001 – Initial schema: leave types, allocations, requests, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("request_state", ["pending", "approved", "rejected"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name          VARCHAR(100) NOT NULL UNIQUE,
            default_days  INTEGER NOT NULL DEFAULT 0,
            date_created  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_type_default_days CHECK (default_days >= 0)
        )
    """)

    # ── 2. leave_allocations ──────────────────────────────────────────────
    # employee_id is an identity-provider subject; no local employees table.
    op.execute("""
        CREATE TABLE leave_allocations (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     UUID NOT NULL,
            leave_type_id   UUID NOT NULL REFERENCES leave_types(id),
            period          INTEGER NOT NULL,
            number_of_days  INTEGER NOT NULL,
            date_created    TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_allocation UNIQUE (employee_id, leave_type_id, period)
        )
    """)
    op.execute(
        "CREATE INDEX idx_leave_allocations_employee ON leave_allocations(employee_id)"
    )

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            requesting_employee_id  UUID NOT NULL,
            leave_type_id           UUID NOT NULL REFERENCES leave_types(id),
            start_date              DATE NOT NULL,
            end_date                DATE NOT NULL,
            days_requested          INTEGER NOT NULL,
            date_requested          TIMESTAMPTZ NOT NULL,
            date_actioned           TIMESTAMPTZ,
            status                  request_state NOT NULL DEFAULT 'pending',
            approved_by_id          UUID,
            cancelled               BOOLEAN NOT NULL DEFAULT FALSE,
            request_comments        VARCHAR(300),
            CONSTRAINT ck_leave_request_dates CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_type
            ON leave_requests(requesting_employee_id, leave_type_id)
    """)
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 4. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_audit_trail_entity
            ON audit_trail(entity_type, entity_id)
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "leave_requests",
        "leave_allocations",
        "leave_types",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
