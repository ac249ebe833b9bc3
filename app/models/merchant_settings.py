from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class MerchantSettings(Base):
    __tablename__ = "merchant_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shop: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    access_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    past_data_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    past_data_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    past_data_progress: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class EntityBatchState(Base):
    __tablename__ = "entity_batch_states"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shop: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("merchant_settings.shop", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    cursor: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    progress: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("shop", "entity_type", name="uq_entity_batch_states_shop_entity_type"),
        Index("ix_entity_batch_states_entity_type", "entity_type"),
    )
