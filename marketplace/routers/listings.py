from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query

from marketplace.core.auth import Identity, get_current_identity, get_current_profile, get_identity_optional
from marketplace.core.config import settings
from marketplace.core.deps import get_interest_ledger, get_listing_repository, get_wishlist_store
from marketplace.models.listing import Listing
from marketplace.models.profile import Profile
from marketplace.schemas.common import CategoryOut, PageMeta
from marketplace.schemas.listing import ListingCard, ListingCreateIn, ListingOut, ListingPageOut, ListingUpdateIn, SoldIn
from marketplace.services.discovery import ListingFilters, paginate
from marketplace.services.interests import InterestLedger
from marketplace.services.listings import ListingRepository, is_active
from marketplace.services.wishlist import WishlistStore

router = APIRouter(prefix="/api/listings", tags=["listings"])


# ---------- helpers ----------
def to_listing_out(
    l: Listing,
    interested_count: int = 0,
    is_owner: Optional[bool] = None,
    is_saved: Optional[bool] = None,
    is_interested: Optional[bool] = None,
) -> ListingOut:
    return ListingOut(
        id=l.id,
        owner_id=l.owner_id,
        category_id=l.category_id,
        category=CategoryOut.model_validate(l.category) if l.category is not None else None,
        name=l.name,
        description=l.description,
        price=l.price,
        condition=l.condition,
        product_age_months=l.product_age_months,
        images=l.image_urls,
        created_at=l.created_at,
        expires_at=l.expires_at,
        is_sold=l.is_sold,
        is_active=is_active(l),
        interested_count=interested_count,
        is_owner=is_owner,
        is_saved=is_saved,
        is_interested=is_interested,
    )


def to_card(l: Listing, interested_count: int = 0) -> ListingCard:
    urls = l.image_urls
    return ListingCard(
        id=l.id,
        owner_id=l.owner_id,
        name=l.name,
        price=l.price,
        condition=l.condition,
        category_id=l.category_id,
        category_name=l.category_name,
        thumbnail=urls[0] if urls else None,
        created_at=l.created_at,
        expires_at=l.expires_at,
        is_active=is_active(l),
        interested_count=interested_count,
    )


def to_cards(listings: List[Listing], ledger: InterestLedger) -> List[ListingCard]:
    # one grouped count query per page, not one per card
    counts: Dict[int, int] = ledger.get_counts([l.id for l in listings])
    return [to_card(l, counts.get(l.id, 0)) for l in listings]


def _fields(body) -> dict:
    data = body.model_dump(exclude_unset=True, by_alias=False)
    if data.get("images") is not None:
        data["images"] = [str(u) for u in data["images"]]
    return data


# ---------- 1) create ----------
@router.post("", response_model=ListingOut, status_code=201)
def create_listing(
    body: ListingCreateIn,
    me: Profile = Depends(get_current_profile),
    repo: ListingRepository = Depends(get_listing_repository),
):
    fields = body.model_dump(by_alias=False)
    fields["images"] = [str(u) for u in body.images]
    listing = repo.create(me.user_id, fields)
    return to_listing_out(listing, is_owner=True, is_saved=False, is_interested=False)


# ---------- 2) browse (no token needed) ----------
@router.get("", response_model=ListingPageOut)
def browse_listings(
    q: Optional[str] = None,
    category: Optional[int] = None,
    condition: Optional[str] = None,
    min_price: Optional[int] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[int] = Query(None, alias="maxPrice", ge=0),
    product_age: Optional[int] = Query(None, alias="productAge", ge=0),
    sort_by: str = Query("newest", alias="sortBy"),
    page: int = Query(1, ge=1),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    filters = ListingFilters(
        query=q,
        category_id=category,
        condition=condition,
        min_price=min_price,
        max_price=max_price,
        max_age_months=product_age,
        sort=sort_by,
    )
    result = paginate(repo.search(filters), page, settings.PAGE_SIZE)
    return ListingPageOut(
        meta=PageMeta(page=result.page, size=result.size, total=result.total, total_pages=result.total_pages),
        data=to_cards(result.items, ledger),
    )


# ---------- 3) my listings ----------
@router.get("/my", response_model=List[ListingCard])
def my_listings(
    active_only: bool = Query(False, alias="activeOnly"),
    me: Identity = Depends(get_current_identity),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    return to_cards(repo.list_by_owner(me.user_id, active_only=active_only), ledger)


# ---------- 4) detail (token optional) ----------
@router.get("/{listing_id}", response_model=ListingOut)
def get_listing(
    listing_id: int = Path(..., ge=1),
    me: Optional[Identity] = Depends(get_identity_optional),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
    wishlist: WishlistStore = Depends(get_wishlist_store),
):
    listing = repo.require(listing_id)
    is_owner = bool(me and listing.owner_id == me.user_id)
    is_saved = is_interested = None
    if me and not is_owner:
        is_saved = wishlist.is_saved(listing.id, me.user_id)
        is_interested = ledger.is_interested(listing.id, me.user_id)
    return to_listing_out(
        listing,
        interested_count=ledger.get_count(listing.id),
        is_owner=is_owner,
        is_saved=is_saved,
        is_interested=is_interested,
    )


# ---------- 5) similar listings ----------
@router.get("/{listing_id}/similar", response_model=List[ListingCard])
def similar_listings(
    listing_id: int = Path(..., ge=1),
    limit: int = Query(4, ge=1, le=24),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    listing = repo.require(listing_id)
    return to_cards(repo.list_by_category(listing.category_id, exclude_id=listing.id, limit=limit), ledger)


# ---------- 6) edit ----------
@router.patch("/{listing_id}", response_model=ListingOut)
def update_listing(
    listing_id: int,
    body: ListingUpdateIn,
    me: Identity = Depends(get_current_identity),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    listing = repo.update(listing_id, me.user_id, _fields(body))
    return to_listing_out(listing, interested_count=ledger.get_count(listing.id), is_owner=True)


# ---------- 7) sold / back on sale ----------
@router.post("/{listing_id}/sold", response_model=ListingOut)
def mark_sold(
    listing_id: int,
    body: SoldIn,
    me: Identity = Depends(get_current_identity),
    repo: ListingRepository = Depends(get_listing_repository),
    ledger: InterestLedger = Depends(get_interest_ledger),
):
    listing = repo.mark_sold(listing_id, me.user_id, sold=body.sold)
    return to_listing_out(listing, interested_count=ledger.get_count(listing.id), is_owner=True)


# ---------- 8) delete ----------
@router.delete("/{listing_id}", status_code=200)
def delete_listing(
    listing_id: int,
    me: Identity = Depends(get_current_identity),
    repo: ListingRepository = Depends(get_listing_repository),
):
    repo.delete(listing_id, me.user_id)
    return {"listingId": listing_id, "message": "Listing deleted successfully!"}
