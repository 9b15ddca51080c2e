"""Schedule slots, vehicle/child assignments and group schedule config."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    op.create_table(
        "carpool_group",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.PrimaryKeyConstraint("id", name="pk_carpool_group"),
    )
    op.create_table(
        "vehicle",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.CheckConstraint("capacity >= 0", name="ck_vehicle_capacity_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_vehicle"),
    )
    op.create_table(
        "driver",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_driver"),
    )
    op.create_table(
        "child",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_child"),
    )

    op.create_table(
        "schedule_slot",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column(
            "group_id",
            sa.String(length=32),
            sa.ForeignKey(
                "carpool_group.id",
                ondelete="CASCADE",
                name="fk_schedule_slot_group_id_carpool_group",
            ),
            nullable=False,
        ),
        sa.Column("datetime", sa.DateTime(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_schedule_slot"),
        sa.UniqueConstraint("group_id", "datetime", name="uq_schedule_slot_group_datetime"),
    )
    op.create_index("ix_schedule_slot_datetime", "schedule_slot", ["datetime"])

    op.create_table(
        "schedule_slot_vehicle",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column(
            "slot_id",
            sa.String(length=32),
            sa.ForeignKey(
                "schedule_slot.id",
                ondelete="CASCADE",
                name="fk_schedule_slot_vehicle_slot_id_schedule_slot",
            ),
            nullable=False,
        ),
        sa.Column(
            "vehicle_id",
            sa.String(length=32),
            sa.ForeignKey("vehicle.id", name="fk_schedule_slot_vehicle_vehicle_id_vehicle"),
            nullable=False,
        ),
        sa.Column(
            "driver_id",
            sa.String(length=32),
            sa.ForeignKey("driver.id", name="fk_schedule_slot_vehicle_driver_id_driver"),
            nullable=True,
        ),
        sa.Column("seat_override", sa.Integer(), nullable=True),
        sa.Column("occupancy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "seat_override IS NULL OR seat_override >= 0",
            name="ck_schedule_slot_vehicle_seat_override_non_negative",
        ),
        sa.CheckConstraint(
            "occupancy >= 0", name="ck_schedule_slot_vehicle_occupancy_non_negative"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_schedule_slot_vehicle"),
        sa.UniqueConstraint(
            "slot_id", "vehicle_id", name="uq_schedule_slot_vehicle_slot_vehicle"
        ),
    )
    op.create_index(
        "ix_schedule_slot_vehicle_driver_id", "schedule_slot_vehicle", ["driver_id"]
    )
    op.create_index(
        "ix_schedule_slot_vehicle_vehicle_id", "schedule_slot_vehicle", ["vehicle_id"]
    )

    op.create_table(
        "schedule_slot_child",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column(
            "slot_id",
            sa.String(length=32),
            sa.ForeignKey(
                "schedule_slot.id",
                ondelete="CASCADE",
                name="fk_schedule_slot_child_slot_id_schedule_slot",
            ),
            nullable=False,
        ),
        sa.Column(
            "vehicle_assignment_id",
            sa.String(length=32),
            sa.ForeignKey(
                "schedule_slot_vehicle.id",
                ondelete="CASCADE",
                name="fk_schedule_slot_child_vehicle_assignment_id_schedule_slot_vehicle",
            ),
            nullable=False,
        ),
        sa.Column(
            "child_id",
            sa.String(length=32),
            sa.ForeignKey("child.id", name="fk_schedule_slot_child_child_id_child"),
            nullable=False,
        ),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_schedule_slot_child"),
        sa.UniqueConstraint("slot_id", "child_id", name="uq_schedule_slot_child_slot_child"),
    )
    op.create_index(
        "ix_schedule_slot_child_vehicle_assignment_id",
        "schedule_slot_child",
        ["vehicle_assignment_id"],
    )

    op.create_table(
        "group_schedule_config",
        sa.Column(
            "group_id",
            sa.String(length=32),
            sa.ForeignKey(
                "carpool_group.id",
                ondelete="CASCADE",
                name="fk_group_schedule_config_group_id_carpool_group",
            ),
            nullable=False,
        ),
        sa.Column("schedule_hours", sa.JSON(), nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("group_id", name="pk_group_schedule_config"),
    )


def downgrade() -> None:
    op.drop_table("group_schedule_config")
    op.drop_index("ix_schedule_slot_child_vehicle_assignment_id", table_name="schedule_slot_child")
    op.drop_table("schedule_slot_child")
    op.drop_index("ix_schedule_slot_vehicle_vehicle_id", table_name="schedule_slot_vehicle")
    op.drop_index("ix_schedule_slot_vehicle_driver_id", table_name="schedule_slot_vehicle")
    op.drop_table("schedule_slot_vehicle")
    op.drop_index("ix_schedule_slot_datetime", table_name="schedule_slot")
    op.drop_table("schedule_slot")
    op.drop_table("child")
    op.drop_table("driver")
    op.drop_table("vehicle")
    op.drop_table("carpool_group")
