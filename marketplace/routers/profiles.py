from fastapi import APIRouter, Depends, status

from marketplace.core.auth import Identity, get_current_identity, get_identity_optional
from marketplace.core.deps import get_interest_ledger, get_listing_repository, get_profile_service
from marketplace.routers.listings import to_cards
from marketplace.schemas.profile import ProfileCreateIn, ProfileOut, ProfileUpdateIn, PublicProfileOut
from marketplace.services.interests import InterestLedger
from marketplace.services.listings import ListingRepository
from marketplace.services.profiles import ProfileService

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.post("", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreateIn,
    me: Identity = Depends(get_current_identity),
    profiles: ProfileService = Depends(get_profile_service),
):
    return profiles.onboard(me, name=payload.name, phone=payload.phone)


@router.get("/me", response_model=ProfileOut)
def get_me(
    me: Identity = Depends(get_current_identity),
    profiles: ProfileService = Depends(get_profile_service),
):
    return profiles.require(me.user_id)


@router.patch("/me", response_model=ProfileOut)
def update_me(
    payload: ProfileUpdateIn,
    me: Identity = Depends(get_current_identity),
    profiles: ProfileService = Depends(get_profile_service),
):
    return profiles.update_phone(me.user_id, payload.phone)


@router.get("/{user_id}", response_model=PublicProfileOut)
def public_profile(
    user_id: str,
    me=Depends(get_identity_optional),
    profiles: ProfileService = Depends(get_profile_service),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    profile = profiles.require(user_id)
    return PublicProfileOut(
        user_id=profile.user_id,
        name=profile.name,
        avatar_url=profile.avatar_url,
        member_since=profile.created_at,
        is_own_profile=bool(me and me.user_id == profile.user_id),
        listings=to_cards(repo.list_by_owner(profile.user_id, active_only=True), ledger),
    )
