"""Initial schema: directories, appointments and live technician location.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


APPOINTMENT_STATUSES = (
    "scheduled",
    "confirmed",
    "in_progress",
    "traveling",
    "on_site",
    "completed",
    "cancelled",
)


def upgrade() -> None:
    # ── customers ─────────────────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── team_users ────────────────────────────────────────────────────
    op.create_table(
        "team_users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("role", sa.String(40), server_default="technician", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_team_users_active_role", "team_users", ["is_active", "role"]
    )

    # ── appointments ──────────────────────────────────────────────────
    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column(
            "technician_id",
            sa.Integer,
            sa.ForeignKey("team_users.id"),
            nullable=True,
        ),
        sa.Column("device_id", sa.String(64), nullable=True),
        sa.Column("scheduled_date", sa.Date, nullable=False),
        sa.Column("scheduled_time_start", sa.Time, nullable=False),
        sa.Column("estimated_duration", sa.Integer, server_default="60", nullable=False),
        sa.Column(
            "status",
            sa.Enum(*APPOINTMENT_STATUSES, name="appointmentstatus"),
            server_default="scheduled",
            nullable=False,
        ),
        sa.Column(
            "service_type", sa.String(100), server_default="Annual Test", nullable=False
        ),
        sa.Column("special_instructions", sa.Text, nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column(
            "customer_can_track", sa.Boolean, server_default=sa.false(), nullable=False
        ),
        sa.Column("technician_latitude", sa.Float, nullable=True),
        sa.Column("technician_longitude", sa.Float, nullable=True),
        sa.Column(
            "technician_last_location_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("travel_distance_km", sa.Float, nullable=True),
        sa.Column("estimated_arrival_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    # A technician holds at most one live booking per start time
    op.create_index(
        "uq_appointments_technician_slot",
        "appointments",
        ["technician_id", "scheduled_date", "scheduled_time_start"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )
    op.create_index(
        "idx_appointments_date_status", "appointments", ["scheduled_date", "status"]
    )
    op.create_index("idx_appointments_customer", "appointments", ["customer_id"])
    op.create_index("idx_appointments_technician", "appointments", ["technician_id"])

    # ── technician_current_location ───────────────────────────────────
    op.create_table(
        "technician_current_location",
        sa.Column(
            "technician_id",
            sa.Integer,
            sa.ForeignKey("team_users.id"),
            primary_key=True,
        ),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("accuracy", sa.Float, nullable=True),
        sa.Column("heading", sa.Float, nullable=True),
        sa.Column("speed", sa.Float, nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("battery_level", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_tech_location_active", "technician_current_location", ["is_active"]
    )


def downgrade() -> None:
    op.drop_table("technician_current_location")
    op.drop_table("appointments")
    op.drop_table("team_users")
    op.drop_table("customers")
    op.execute("DROP TYPE IF EXISTS appointmentstatus")
