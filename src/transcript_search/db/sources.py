"""
Segment Source Provider

Supplies transcript text and display metadata for course segments.

`get()` returns None for an unknown segment id, while a known segment
without a transcript comes back with `transcript=None`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Module, Segment
from ..core.errors import PersistenceError
from ..embeddings.models import SourceDocument


class SourceRepository(ABC):
    """Read access to segments and their transcripts."""

    @abstractmethod
    async def get(self, segment_id: int) -> Optional[SourceDocument]:
        """Return the segment, or None if it does not exist."""

    @abstractmethod
    async def list_all(self) -> List[SourceDocument]:
        """Return every segment ordered by module order, then segment order."""


class SegmentRepository(SourceRepository):
    """
    PostgreSQL-backed segment lookup joining each segment with its module.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @staticmethod
    def _base_query():
        return select(
            Segment.id,
            Segment.title,
            Segment.slug,
            Segment.order,
            Segment.transcripts,
            Module.title.label("module_title"),
            Module.order.label("module_order"),
        ).join(Module, Segment.module_id == Module.id)

    @staticmethod
    def _to_document(row) -> SourceDocument:
        return SourceDocument(
            id=row.id,
            title=row.title,
            slug=row.slug,
            order=row.order,
            transcript=row.transcripts,
            module_title=row.module_title,
            module_order=row.module_order,
        )

    async def get(self, segment_id: int) -> Optional[SourceDocument]:
        stmt = self._base_query().where(Segment.id == segment_id)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load segment {segment_id}: {type(exc).__name__}") from exc

        row = result.one_or_none()
        return self._to_document(row) if row is not None else None

    async def list_all(self) -> List[SourceDocument]:
        stmt = self._base_query().order_by(Module.order, Segment.order, Segment.id)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list segments: {type(exc).__name__}") from exc

        return [self._to_document(row) for row in result.all()]


class InMemorySegmentRepository(SourceRepository):
    """
    Dictionary-backed segments for local runs and tests.
    """

    def __init__(self, documents: Iterable[SourceDocument] = ()) -> None:
        self._documents: Dict[int, SourceDocument] = {}
        for doc in documents:
            self.put(doc)

    def put(self, document: SourceDocument) -> None:
        self._documents[document.id] = document

    def remove(self, segment_id: int) -> None:
        self._documents.pop(segment_id, None)

    async def get(self, segment_id: int) -> Optional[SourceDocument]:
        return self._documents.get(segment_id)

    async def list_all(self) -> List[SourceDocument]:
        return sorted(
            self._documents.values(),
            key=lambda d: (d.module_order, d.order, d.id),
        )
