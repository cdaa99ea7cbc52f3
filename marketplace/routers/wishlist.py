from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from marketplace.core.auth import Identity, get_current_identity, get_current_profile
from marketplace.core.deps import get_interest_ledger, get_wishlist_store
from marketplace.models.profile import Profile
from marketplace.routers.listings import to_cards
from marketplace.schemas.interest import WishlistStateOut
from marketplace.schemas.listing import ListingCard
from marketplace.services.interests import InterestLedger
from marketplace.services.wishlist import WishlistStore

router = APIRouter(prefix="/api", tags=["wishlist"])


class WishlistToggleIn(BaseModel):
    saved: bool


@router.get("/wishlist", response_model=List[ListingCard])
def my_wishlist(
    me: Identity = Depends(get_current_identity),
    store: WishlistStore = Depends(get_wishlist_store),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    return to_cards(store.list_for_user(me.user_id), ledger)


@router.put("/listings/{listing_id}/wishlist", response_model=WishlistStateOut)
def toggle_wishlist(
    listing_id: int,
    body: WishlistToggleIn,
    me: Profile = Depends(get_current_profile),
    store: WishlistStore = Depends(get_wishlist_store),
):
    if body.saved:
        store.add(listing_id, me.user_id)
    else:
        store.remove(listing_id, me.user_id)
    return WishlistStateOut(listing_id=listing_id, saved=body.saved)


@router.delete("/listings/{listing_id}/wishlist", response_model=WishlistStateOut)
def remove_from_wishlist(
    listing_id: int,
    me: Profile = Depends(get_current_profile),
    store: WishlistStore = Depends(get_wishlist_store),
):
    store.remove(listing_id, me.user_id)
    return WishlistStateOut(listing_id=listing_id, saved=False)
