from fastapi import APIRouter, Depends
from pydantic import BaseModel

from marketplace.core.auth import Identity, get_current_identity, get_current_profile
from marketplace.core.deps import get_interest_ledger
from marketplace.models.profile import Profile
from marketplace.schemas.interest import InterestedBuyerOut, InterestedBuyersOut, InterestStateOut
from marketplace.services.interests import InterestLedger, MarkResult

router = APIRouter(prefix="/api/listings", tags=["interests"])


class InterestToggleIn(BaseModel):
    interested: bool


def to_state(listing_id: int, result: MarkResult) -> InterestStateOut:
    return InterestStateOut(
        listing_id=listing_id,
        interested=result.interested,
        count=result.count,
        already_marked=result.already_marked,
    )


# ---------- 1) my interest state ----------
@router.get("/{listing_id}/interest", response_model=InterestStateOut)
def get_interest(
    listing_id: int,
    me: Identity = Depends(get_current_identity),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    return InterestStateOut(
        listing_id=listing_id,
        interested=ledger.is_interested(listing_id, me.user_id),
        count=ledger.get_count(listing_id),
    )


# ---------- 2) toggle ----------
@router.put("/{listing_id}/interest", response_model=InterestStateOut)
def toggle_interest(
    listing_id: int,
    body: InterestToggleIn,
    me: Profile = Depends(get_current_profile),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    if body.interested:
        result = ledger.mark_interested(listing_id, me.user_id)
    else:
        result = ledger.unmark_interested(listing_id, me.user_id)
    return to_state(listing_id, result)


@router.delete("/{listing_id}/interest", response_model=InterestStateOut)
def withdraw_interest(
    listing_id: int,
    me: Profile = Depends(get_current_profile),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    return to_state(listing_id, ledger.unmark_interested(listing_id, me.user_id))


# ---------- 3) who is interested (owner only) ----------
@router.get("/{listing_id}/interested", response_model=InterestedBuyersOut)
def interested_buyers(
    listing_id: int,
    me: Identity = Depends(get_current_identity),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    buyers = ledger.list_interested_profiles(listing_id, me.user_id)
    return InterestedBuyersOut(
        listing_id=listing_id,
        count=ledger.get_count(listing_id),
        buyers=[
            InterestedBuyerOut(
                user_id=b.user_id,
                name=b.name,
                avatar_url=b.avatar_url,
                member_since=b.member_since,
            )
            for b in buyers
        ],
    )
