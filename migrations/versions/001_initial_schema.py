"""Initial schema: rides, route segments, requests, passengers, matches.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

RIDE_STATUS = sa.Enum(
    "WAITING", "IN_PROGRESS", "COMPLETED", "CANCELLED", name="ridestatus"
)
REQUEST_STATUS = sa.Enum(
    "PENDING", "MATCHED", "IN_RIDE", "COMPLETED", name="requeststatus"
)
PASSENGER_STATUS = sa.Enum(
    "MATCHED", "BOARDED", "DROPPED", "CANCELLED", name="passengerstatus"
)
MATCH_STATUS = sa.Enum("MATCHED", "ACCEPTED", name="matchstatus")


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, nullable=False),
        sa.Column("driver_name", sa.String(120), nullable=True),
        sa.Column("pickup_location", sa.String(255), nullable=False),
        sa.Column("drop_location", sa.String(255), nullable=False),
        sa.Column("route", sa.String(1024), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("drop_lat", sa.Float, nullable=False),
        sa.Column("drop_lng", sa.Float, nullable=False),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("status", RIDE_STATUS, nullable=False),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("estimated_duration_minutes", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── route_segments ────────────────────────────────────────────────
    op.create_table(
        "route_segments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence_order", sa.Integer, nullable=False),
        sa.Column("start_location", sa.String(255), nullable=False),
        sa.Column("start_lat", sa.Float, nullable=False),
        sa.Column("start_lng", sa.Float, nullable=False),
        sa.Column("end_location", sa.String(255), nullable=False),
        sa.Column("end_lat", sa.Float, nullable=False),
        sa.Column("end_lng", sa.Float, nullable=False),
        sa.Column("distance_km", sa.Float, nullable=False),
        sa.Column("rate_per_km", sa.Float, nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("occupied_seats", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("ride_id", "sequence_order", name="uq_segment_order"),
        sa.CheckConstraint(
            "occupied_seats >= 0 AND occupied_seats <= total_seats",
            name="ck_segment_occupancy",
        ),
    )
    op.create_index("idx_segments_ride", "route_segments", ["ride_id"])

    # ── ride_requests ─────────────────────────────────────────────────
    op.create_table(
        "ride_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rider_id", sa.Integer, nullable=False),
        sa.Column("rider_name", sa.String(120), nullable=True),
        sa.Column("pickup_location", sa.String(255), nullable=False),
        sa.Column("drop_location", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("drop_lat", sa.Float, nullable=True),
        sa.Column("drop_lng", sa.Float, nullable=True),
        sa.Column("status", REQUEST_STATUS, nullable=False),
        sa.Column(
            "matched_ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=True
        ),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("fare", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_requests_status", "ride_requests", ["status"])
    op.create_index("idx_requests_rider", "ride_requests", ["rider_id"])
    op.create_index("idx_requests_ride", "ride_requests", ["matched_ride_id"])

    # ── ride_passengers ───────────────────────────────────────────────
    op.create_table(
        "ride_passengers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column(
            "request_id",
            sa.Integer,
            sa.ForeignKey("ride_requests.id"),
            nullable=True,
        ),
        sa.Column("rider_id", sa.Integer, nullable=False),
        sa.Column("rider_name", sa.String(120), nullable=True),
        sa.Column("boarding_location", sa.String(255), nullable=True),
        sa.Column("boarding_lat", sa.Float, nullable=True),
        sa.Column("boarding_lng", sa.Float, nullable=True),
        sa.Column("drop_location", sa.String(255), nullable=True),
        sa.Column("drop_lat", sa.Float, nullable=True),
        sa.Column("drop_lng", sa.Float, nullable=True),
        sa.Column("status", PASSENGER_STATUS, nullable=False),
        sa.Column("start_segment", sa.Integer, nullable=False, server_default="0"),
        sa.Column("end_segment", sa.Integer, nullable=False, server_default="0"),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("fare_amount", sa.Float, nullable=True),
        sa.Column(
            "payment_completed", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("boarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dropped_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_passengers_ride_status", "ride_passengers", ["ride_id", "status"]
    )
    op.create_index("idx_passengers_rider", "ride_passengers", ["rider_id"])

    # ── matches ───────────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_request_id",
            sa.Integer,
            sa.ForeignKey("ride_requests.id"),
            nullable=False,
        ),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("status", MATCH_STATUS, nullable=False),
        sa.Column(
            "matched_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_matches_request", "matches", ["ride_request_id"])
    op.create_index("idx_matches_driver_status", "matches", ["driver_id", "status"])


def downgrade() -> None:
    op.drop_table("matches")
    op.drop_table("ride_passengers")
    op.drop_table("ride_requests")
    op.drop_table("route_segments")
    op.drop_table("rides")
    op.execute("DROP TYPE IF EXISTS matchstatus")
    op.execute("DROP TYPE IF EXISTS passengerstatus")
    op.execute("DROP TYPE IF EXISTS requeststatus")
    op.execute("DROP TYPE IF EXISTS ridestatus")
