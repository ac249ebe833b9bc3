"""create tagging tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "rules"):
        op.create_table(
            "rules",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("applies_to", sa.String(length=20), nullable=False),
            sa.Column("condition", sa.String(length=60), nullable=False),
            sa.Column("condition_value", sa.String(length=255), nullable=False),
            sa.Column("tag", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _timestamp("created_at"),
            _timestamp("updated_at"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_rules_shop", "rules", ["shop"], unique=False)
        op.create_index("ix_rules_shop_created_at", "rules", ["shop", "created_at"], unique=False)
        op.create_index(
            "ix_rules_shop_applies_to_active",
            "rules",
            ["shop", "applies_to", "is_active"],
            unique=False,
        )

    if not _table_exists(inspector, "merchant_settings"):
        op.create_table(
            "merchant_settings",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop", sa.String(length=255), nullable=False),
            sa.Column("access_token", sa.String(length=255), nullable=True),
            sa.Column("past_data_opt_in", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("past_data_processing", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("past_data_progress", sa.JSON(), nullable=True),
            _timestamp("created_at"),
            _timestamp("updated_at"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_merchant_settings_shop", "merchant_settings", ["shop"], unique=True)

    if not _table_exists(inspector, "entity_batch_states"):
        op.create_table(
            "entity_batch_states",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop", sa.String(length=255), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("cursor", sa.String(length=512), nullable=True),
            sa.Column("progress", sa.JSON(), nullable=True),
            _timestamp("updated_at"),
            sa.ForeignKeyConstraint(["shop"], ["merchant_settings.shop"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("shop", "entity_type", name="uq_entity_batch_states_shop_entity_type"),
        )
        op.create_index("ix_entity_batch_states_shop", "entity_batch_states", ["shop"], unique=False)
        op.create_index(
            "ix_entity_batch_states_entity_type",
            "entity_batch_states",
            ["entity_type"],
            unique=False,
        )

    if not _table_exists(inspector, "tag_activities"):
        op.create_table(
            "tag_activities",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop", sa.String(length=255), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("tag", sa.String(length=255), nullable=False),
            sa.Column("rule_id", sa.String(length=36), nullable=True),
            _timestamp("applied_at"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tag_activities_shop", "tag_activities", ["shop"], unique=False)
        op.create_index("ix_tag_activities_rule_id", "tag_activities", ["rule_id"], unique=False)
        op.create_index(
            "ix_tag_activities_shop_applied_at",
            "tag_activities",
            ["shop", "applied_at"],
            unique=False,
        )
        op.create_index(
            "ix_tag_activities_shop_entity",
            "tag_activities",
            ["shop", "entity_type", "entity_id"],
            unique=False,
        )

    if not _table_exists(inspector, "tag_usages"):
        op.create_table(
            "tag_usages",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop", sa.String(length=255), nullable=False),
            sa.Column("tag", sa.String(length=255), nullable=False),
            sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
            _timestamp("last_used"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("shop", "tag", name="uq_tag_usages_shop_tag"),
        )
        op.create_index("ix_tag_usages_shop", "tag_usages", ["shop"], unique=False)
        op.create_index("ix_tag_usages_shop_count", "tag_usages", ["shop", "count"], unique=False)


def downgrade() -> None:
    op.drop_table("tag_usages")
    op.drop_table("tag_activities")
    op.drop_table("entity_batch_states")
    op.drop_table("merchant_settings")
    op.drop_table("rules")
