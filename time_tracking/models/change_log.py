from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.schema import Index

from time_tracking.database import Base


class ChangeLog(Base):
    __tablename__ = "change_logs"

    id = Column(Integer, primary_key=True)

    company_id = Column(Integer, nullable=False, index=True)

    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    action = Column(String, nullable=False)

    changes = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    changed_by_id = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_change_logs_entity", "entity_type", "entity_id"),
    )
