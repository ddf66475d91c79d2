from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.doctrack.models import Base


class DocumentRow(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_created_by", "created_by"),
        Index("idx_documents_recipient", "recipient"),
        Index("idx_documents_chain_root", "chain_root_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    doc_type: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    workflow: Mapped[str] = mapped_column(String(8), nullable=False)  # flow | drop

    # Authoritative state. Null on rows written before the dual scheme.
    document_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    tracking_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Derived projection, written for older readers only.
    status: Mapped[str] = mapped_column(String(64), nullable=False)

    created_by: Mapped[str] = mapped_column(String(320), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    recipient: Mapped[str | None] = mapped_column(String(320), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_step_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    approval_steps: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    action_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    revision_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    chain_root_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Compare-and-set counter for concurrent scans of the same document.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
