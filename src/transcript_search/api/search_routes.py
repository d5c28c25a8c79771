"""
Search Routes

Vector-based semantic search over transcript chunks, used by the admin
search screen.
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .models import SearchRequest
from .dependencies import get_vector_search, verify_admin
from ..embeddings.models import SearchResult
from ..embeddings.search import VectorSearch

router = APIRouter(
    prefix="/search",
    tags=["search"],
    dependencies=[Depends(verify_admin)],
)


@router.post(
    "/",
    response_model=List[SearchResult],
    summary="Vector-based semantic search",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    vector_search: Annotated[VectorSearch, Depends(get_vector_search)],
) -> List[SearchResult]:
    """
    Return transcript chunks ranked by similarity to the query.

    An embedding failure surfaces as 502 through the registered handlers;
    an empty corpus returns an empty list.
    """
    return await vector_search.search(req.query, limit=req.limit)
