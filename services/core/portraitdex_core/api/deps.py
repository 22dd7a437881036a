"""API dependencies for dependency injection."""

from typing import Annotated, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from portraitdex_core.config import Settings, get_settings
from portraitdex_core.domain.services.gallery import GalleryService
from portraitdex_core.domain.services.search_index import SearchIndex, build_search_index
from portraitdex_core.infra.db import get_readonly_session_factory


def get_db() -> Generator[Session, None, None]:
    """Get a read-only database session."""
    session_factory = get_readonly_session_factory()
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_search_index(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SearchIndex:
    """Get the configured search index."""
    return build_search_index(settings)


def get_gallery_service(
    db: Annotated[Session, Depends(get_db)],
    search_index: Annotated[SearchIndex, Depends(get_search_index)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> GalleryService:
    """Get the gallery read service."""
    return GalleryService(
        db=db,
        search_index=search_index,
        ipfs_gateway_url=settings.ipfs_gateway_url,
        arweave_gateway_url=settings.arweave_gateway_url,
    )


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
GalleryServiceDep = Annotated[GalleryService, Depends(get_gallery_service)]
