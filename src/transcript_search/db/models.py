"""
SQLAlchemy Models

Defines the database schema for:
- Course modules and their segments (the transcript sources)
- Transcript chunks with pgvector embeddings
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    Column,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Course Structure
# ---------------------------------------------------------------------

class Module(Base):
    """
    A titled group of segments, ordered within the course.
    """
    __tablename__ = "app_module"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    segments: Mapped[List["Segment"]] = relationship(
        "Segment",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="Segment.order",
    )

    __table_args__ = (
        Index("modules_order_idx", "order"),
    )


class Segment(Base):
    """
    A video lesson. `transcripts` holds the transcript text, if any.
    """
    __tablename__ = "app_segment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    transcripts: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    module_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("app_module.id", ondelete="CASCADE"),
        nullable=False,
    )

    module: Mapped["Module"] = relationship("Module", back_populates="segments")
    chunks: Mapped[List["TranscriptChunk"]] = relationship(
        "TranscriptChunk",
        back_populates="segment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TranscriptChunk.chunk_index",
    )

    __table_args__ = (
        Index("segments_slug_idx", "slug"),
        Index("segments_module_order_idx", "module_id", "order"),
    )


# ---------------------------------------------------------------------
# Transcript Chunk Model
# ---------------------------------------------------------------------

class TranscriptChunk(Base):
    """
    One token window of a segment transcript.

    Uses pgvector for similarity search. `embedding` stays NULL until the
    segment is vectorized.
    """
    __tablename__ = "app_transcript_chunk"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    segment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("app_segment.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    embedding = Column(Vector(settings.embedding_dimensions), nullable=True)

    segment: Mapped["Segment"] = relationship("Segment", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("segment_id", "chunk_index", name="uq_transcript_chunk_segment_index"),
        Index("transcript_chunks_segment_idx", "segment_id"),
    )
