"""Portrait gallery API routes.

Provides endpoints for:
- GET /portraits - Paginated gallery listing
- GET /portraits/search - Username search
"""

from fastapi import APIRouter, Query

from portraitdex_core.api.deps import GalleryServiceDep
from portraitdex_core.api.schemas.portraits import PortraitListResponse, PortraitResponse
from portraitdex_core.domain.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PaginatedResult
from portraitdex_core.domain.services.gallery import GalleryFilter, PortraitEntry

router = APIRouter(prefix="/portraits", tags=["portraits"])


def _to_response(result: PaginatedResult[PortraitEntry]) -> PortraitListResponse:
    return PortraitListResponse(
        page=result.page,
        limit=result.page_size,
        total=result.total,
        portraits=[
            PortraitResponse(
                id=entry.id,
                username=entry.username,
                avatar_image=entry.avatar_image,
                profile_url=entry.profile_url,
                is_live=entry.is_live,
            )
            for entry in result.items
        ],
    )


@router.get(
    "",
    response_model=PortraitListResponse,
    summary="List portraits",
    description="Portraits in ascending id order, published ones by default.",
)
def list_portraits(
    service: GalleryServiceDep,
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    filter: GalleryFilter = Query(default=GalleryFilter.LIVE, description="live, avatar or all"),
):
    """List portraits."""
    return _to_response(service.list_portraits(page=page, limit=limit, gallery_filter=filter))


@router.get(
    "/search",
    response_model=PortraitListResponse,
    summary="Search portraits",
    description="Match usernames through the search index; short queries return nothing.",
)
def search_portraits(
    service: GalleryServiceDep,
    q: str = Query(default="", max_length=100, description="Search text"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    filter: GalleryFilter = Query(default=GalleryFilter.LIVE, description="live, avatar or all"),
):
    """Search portraits by username."""
    return _to_response(
        service.search_portraits(q, page=page, limit=limit, gallery_filter=filter)
    )
