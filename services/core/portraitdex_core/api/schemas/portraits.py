"""Portrait gallery API schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class PortraitResponse(BaseModel):
    """Response schema for one gallery card."""

    id: int = Field(..., description="On-chain portrait ID")
    username: str = Field(..., description="Display title")
    avatar_image: Optional[str] = Field(
        default=None, description="Gateway URL of the avatar, if any"
    )
    profile_url: str = Field(..., description="Public profile page")
    is_live: bool = Field(..., description="Whether the portrait is published")


class PortraitListResponse(BaseModel):
    """Response schema for a page of portraits."""

    page: int = Field(..., description="Current page (1-indexed)")
    limit: int = Field(..., description="Page size")
    total: int = Field(..., description="Total matching portraits")
    portraits: list[PortraitResponse] = Field(..., description="Portraits on this page")
