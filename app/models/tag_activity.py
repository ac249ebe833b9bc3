from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class TagActivity(Base):
    __tablename__ = "tag_activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shop: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tag: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_tag_activities_shop_applied_at", "shop", "applied_at"),
        Index("ix_tag_activities_shop_entity", "shop", "entity_type", "entity_id"),
    )


class TagUsage(Base):
    __tablename__ = "tag_usages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shop: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    tag: Mapped[str] = mapped_column(String(255), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_used: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("shop", "tag", name="uq_tag_usages_shop_tag"),
        Index("ix_tag_usages_shop_count", "shop", "count"),
    )
