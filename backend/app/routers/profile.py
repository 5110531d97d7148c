"""
ScopeGen Learning - Adaptive Profile API Router

The per-user learned profile. Clients cache it and revalidate with
If-None-Match; profile_version is the ETag.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services.learning import AdaptiveProfileService


router = APIRouter(prefix="/learning/profile", tags=["profile"])


def _etag(profile_version: int) -> str:
    return f'"{profile_version}"'


@router.get("", response_model=dict)
async def get_profile(
    response: Response,
    if_none_match: Optional[str] = Header(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get the learned profile.

    Returns 304 with no body when If-None-Match matches the current
    profile_version.
    """
    profile = AdaptiveProfileService(db).get_profile(current_user.user_id)
    etag = _etag(profile.profile_version)

    if if_none_match is not None:
        candidates = {tag.strip() for tag in if_none_match.split(",")}
        if etag in candidates or str(profile.profile_version) in candidates:
            return Response(status_code=304, headers={"ETag": etag})

    response.headers["ETag"] = etag
    return profile.to_dict()


@router.get("/progress", response_model=dict)
async def get_progress(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Days active, actions recorded and whether the profile is adapted yet."""
    return AdaptiveProfileService(db).get_learning_progress(current_user.user_id)
