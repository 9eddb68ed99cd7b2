"""Initial AssetSO schema

Revision ID: a1c4e9d27b3f
Revises:
Create Date: 2026-10-18 09:12:40.381552

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c4e9d27b3f"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    columns = [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(),
                nullable=False,
                server_default=sa.func.now(),
            )
        )
    return columns


def upgrade():
    """Create every application table."""
    # --- Lookups ---
    op.create_table(
        "sites",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("province", sa.String(length=100), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    for table in ("categories", "departments"):
        op.create_table(
            table,
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    # --- People ---
    op.create_table(
        "employees",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("employee_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("position", sa.String(length=200), nullable=True),
        sa.Column("join_date", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # --- Assets ---
    op.create_table(
        "assets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("no_asset", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("serial_no", sa.String(length=200), nullable=True),
        sa.Column("purchase_date", sa.DateTime(), nullable=True),
        sa.Column("cost", sa.Float(), nullable=True),
        sa.Column("brand", sa.String(length=200), nullable=True),
        sa.Column("model", sa.String(length=200), nullable=True),
        sa.Column("site_id", sa.String(length=36), nullable=True),
        sa.Column("category_id", sa.String(length=36), nullable=True),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("pic_id", sa.String(length=36), nullable=True),
        sa.Column("pic", sa.String(length=200), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("date_created", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"]),
        sa.ForeignKeyConstraint(["pic_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_assets_no_asset", "assets", ["no_asset"], unique=True)

    op.create_table(
        "asset_checkouts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("asset_id", sa.String(length=36), nullable=False),
        sa.Column("assign_to_id", sa.String(length=36), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("checkout_date", sa.DateTime(), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("signature_data", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("returned_at", sa.DateTime(), nullable=True),
        sa.Column("return_notes", sa.Text(), nullable=True),
        sa.Column("received_by_id", sa.String(length=36), nullable=True),
        sa.Column("return_signature_data", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"]),
        sa.ForeignKeyConstraint(["assign_to_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"]),
        sa.ForeignKeyConstraint(["received_by_id"], ["employees.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_asset_checkouts_asset_id", "asset_checkouts", ["asset_id"], unique=False
    )

    op.create_table(
        "asset_custom_fields",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("label", sa.String(length=200), nullable=False),
        sa.Column("field_type", sa.String(length=30), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("show_condition", sa.Text(), nullable=True),
        sa.Column("options", sa.Text(), nullable=True),
        sa.Column("default_value", sa.String(length=500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "asset_custom_values",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("asset_id", sa.String(length=36), nullable=False),
        sa.Column("custom_field_id", sa.String(length=36), nullable=False),
        sa.Column("string_value", sa.Text(), nullable=True),
        sa.Column("number_value", sa.Float(), nullable=True),
        sa.Column("date_value", sa.DateTime(), nullable=True),
        sa.Column("boolean_value", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"]),
        sa.ForeignKeyConstraint(["custom_field_id"], ["asset_custom_fields.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "asset_id", "custom_field_id", name="uq_asset_custom_value"
        ),
    )

    # --- Stock opname ---
    op.create_table(
        "so_sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("plan_start", sa.DateTime(), nullable=True),
        sa.Column("plan_end", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_assets", sa.Integer(), nullable=False),
        sa.Column("scanned_assets", sa.Integer(), nullable=False),
        sa.Column("verified_assets", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "so_asset_entries",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("so_session_id", sa.String(length=36), nullable=False),
        sa.Column("asset_id", sa.String(length=36), nullable=False),
        sa.Column("scanned_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("is_identified", sa.Boolean(), nullable=False),
        sa.Column("is_crucial", sa.Boolean(), nullable=False),
        sa.Column("crucial_notes", sa.Text(), nullable=True),
        sa.Column("temp_name", sa.String(length=300), nullable=True),
        sa.Column("temp_status", sa.String(length=50), nullable=True),
        sa.Column("temp_no_asset", sa.String(length=100), nullable=True),
        sa.Column("temp_serial_no", sa.String(length=200), nullable=True),
        sa.Column("temp_pic", sa.String(length=200), nullable=True),
        sa.Column("temp_pic_id", sa.String(length=36), nullable=True),
        sa.Column("temp_notes", sa.Text(), nullable=True),
        sa.Column("temp_brand", sa.String(length=200), nullable=True),
        sa.Column("temp_model", sa.String(length=200), nullable=True),
        sa.Column("temp_cost", sa.Float(), nullable=True),
        sa.Column("temp_purchase_date", sa.DateTime(), nullable=True),
        sa.Column("temp_image_url", sa.String(length=500), nullable=True),
        sa.Column("temp_site_id", sa.String(length=36), nullable=True),
        sa.Column("temp_category_id", sa.String(length=36), nullable=True),
        sa.Column("temp_department_id", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"]),
        sa.ForeignKeyConstraint(["so_session_id"], ["so_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "so_session_id", "asset_id", name="uq_so_entry_session_asset"
        ),
    )
    op.create_index(
        "ix_so_asset_entries_so_session_id",
        "so_asset_entries",
        ["so_session_id"],
        unique=False,
    )
    op.create_index(
        "ix_so_asset_entries_asset_id", "so_asset_entries", ["asset_id"], unique=False
    )

    # --- History & audit ---
    op.create_table(
        "asset_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("asset_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("actor", sa.String(length=200), nullable=True),
        sa.Column("checkout_id", sa.String(length=36), nullable=True),
        sa.Column("so_session_id", sa.String(length=36), nullable=True),
        sa.Column("so_asset_entry_id", sa.String(length=36), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_asset_events_asset_id", "asset_events", ["asset_id"], unique=False
    )

    op.create_table(
        "logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("level", sa.String(length=20), nullable=False),
        sa.Column("message", sa.String(length=500), nullable=False),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_logs_user_id", "logs", ["user_id"], unique=False)

    op.create_table(
        "backups",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    """Drop every application table in reverse dependency order."""
    op.drop_table("backups")
    op.drop_index("ix_logs_user_id", table_name="logs")
    op.drop_table("logs")
    op.drop_index("ix_asset_events_asset_id", table_name="asset_events")
    op.drop_table("asset_events")
    op.drop_index("ix_so_asset_entries_asset_id", table_name="so_asset_entries")
    op.drop_index("ix_so_asset_entries_so_session_id", table_name="so_asset_entries")
    op.drop_table("so_asset_entries")
    op.drop_table("so_sessions")
    op.drop_table("asset_custom_values")
    op.drop_table("asset_custom_fields")
    op.drop_index("ix_asset_checkouts_asset_id", table_name="asset_checkouts")
    op.drop_table("asset_checkouts")
    op.drop_index("ix_assets_no_asset", table_name="assets")
    op.drop_table("assets")
    op.drop_table("users")
    op.drop_table("employees")
    op.drop_table("departments")
    op.drop_table("categories")
    op.drop_table("sites")
