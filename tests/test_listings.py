from datetime import timedelta

import pytest

from conftest import image_url
from marketplace.core.errors import Forbidden, NotFound, ValidationError
from marketplace.models.interest import Interest
from marketplace.models.listing import Listing, ListingImage
from marketplace.models.report import Report
from marketplace.models.wishlist import WishlistEntry
from marketplace.services.discovery import ListingFilters
from marketplace.services.listings import ListingRepository, is_active
from marketplace.services.media import MediaPipeline
from marketplace.utils.clock import utcnow


@pytest.fixture()
def repo(db, storage):
    return ListingRepository(db, media=MediaPipeline(storage), ttl_days=30)


def fields(category, **overrides):
    data = {
        "name": "Calculus textbook",
        "description": "Barely used",
        "price": 450,
        "category_id": category.id,
        "condition": "Like New",
        "product_age_months": 6,
        "images": [image_url("front"), image_url("back")],
    }
    data.update(overrides)
    return data


def test_create_sets_expiry_and_is_active(repo, category):
    listing = repo.create("seller", fields(category))

    assert listing.id is not None
    assert listing.owner_id == "seller"
    assert listing.image_urls == [image_url("front"), image_url("back")]
    assert listing.is_sold is False
    assert listing.expires_at - listing.created_at == timedelta(days=30)
    assert is_active(listing)


def test_listing_past_expiry_is_inactive(repo, db, category):
    listing = repo.create("seller", fields(category))
    listing.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    assert not is_active(listing)
    assert listing.id not in [l.id for l in repo.list_active()]
    assert repo.get_by_id(listing.id) is not None


def test_listing_without_expiry_never_expires(repo, db, category):
    listing = repo.create("seller", fields(category))
    listing.expires_at = None
    db.commit()

    assert is_active(listing, now=utcnow() + timedelta(days=3650))


def test_sold_listing_is_inactive_and_can_go_back_on_sale(repo, category):
    listing = repo.create("seller", fields(category))

    sold = repo.mark_sold(listing.id, "seller")
    assert sold.is_sold and not is_active(sold)

    again = repo.mark_sold(listing.id, "seller", sold=False)
    assert not again.is_sold and is_active(again)


def test_price_on_request_is_allowed(repo, category):
    listing = repo.create("seller", fields(category, price=None))
    assert listing.price is None


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"name": "  "}, "NAME_REQUIRED"),
        ({"category_id": None}, "CATEGORY_REQUIRED"),
        ({"category_id": 9999}, "INVALID_CATEGORY"),
        ({"condition": ""}, "CONDITION_REQUIRED"),
        ({"price": 0}, "INVALID_PRICE"),
        ({"product_age_months": -1}, "INVALID_PRODUCT_AGE"),
        ({"images": []}, "NO_IMAGES"),
        ({"images": [image_url(str(i)) for i in range(4)]}, "TOO_MANY_IMAGES"),
    ],
)
def test_create_rejects_invalid_input(repo, db, category, overrides, code):
    with pytest.raises(ValidationError) as exc:
        repo.create("seller", fields(category, **overrides))
    assert exc.value.code == code
    assert db.query(Listing).count() == 0


def test_update_by_non_owner_is_forbidden(repo, category):
    listing = repo.create("seller", fields(category))
    with pytest.raises(Forbidden):
        repo.update(listing.id, "someone-else", {"price": 1})


def test_update_replaces_images_and_cleans_up_removed(repo, storage, category):
    listing = repo.create("seller", fields(category))

    updated = repo.update(
        listing.id, "seller", {"name": "Calculus (2nd ed.)", "images": [image_url("back"), image_url("side")]}
    )

    assert updated.name == "Calculus (2nd ed.)"
    assert updated.price == 450
    assert updated.image_urls == [image_url("back"), image_url("side")]
    assert storage.deleted == ["listing-images/seller/books/front.webp"]


def test_update_ignores_fields_that_are_not_editable(repo, category):
    listing = repo.create("seller", fields(category))
    updated = repo.update(listing.id, "seller", {"owner_id": "thief", "is_sold": True})
    assert updated.owner_id == "seller"
    assert updated.is_sold is False


def test_delete_removes_listing_and_dependents(repo, db, storage, category):
    listing = repo.create("seller", fields(category))
    db.add_all([
        Interest(listing_id=listing.id, user_id="buyer"),
        WishlistEntry(listing_id=listing.id, user_id="buyer"),
        Report(listing_id=listing.id, reporter_id="buyer", reason="spam"),
    ])
    db.commit()

    repo.delete(listing.id, "seller")

    assert repo.get_by_id(listing.id) is None
    assert db.query(ListingImage).count() == 0
    assert db.query(Interest).count() == 0
    assert db.query(WishlistEntry).count() == 0
    assert db.query(Report).one().listing_id is None
    assert sorted(storage.deleted) == [
        "listing-images/seller/books/back.webp",
        "listing-images/seller/books/front.webp",
    ]


def test_delete_tries_every_image_even_if_one_fails(repo, db, storage, category):
    listing = repo.create("seller", fields(category, images=[image_url("a"), image_url("b"), image_url("c")]))
    storage.fail_delete.add("listing-images/seller/books/b.webp")

    repo.delete(listing.id, "seller")

    assert repo.get_by_id(listing.id) is None
    assert len(storage.deleted) == 3


def test_delete_by_non_owner_keeps_listing(repo, storage, category):
    listing = repo.create("seller", fields(category))
    with pytest.raises(Forbidden):
        repo.delete(listing.id, "buyer")
    assert repo.get_by_id(listing.id) is not None
    assert storage.deleted == []


def test_delete_without_media_still_deletes(db, category):
    repo = ListingRepository(db, media=None)
    listing = repo.create("seller", fields(category))
    repo.delete(listing.id, "seller")
    assert repo.get_by_id(listing.id) is None


def test_require_missing_listing(repo):
    with pytest.raises(NotFound) as exc:
        repo.require(12345)
    assert exc.value.code == "LISTING_NOT_FOUND"


def test_list_by_owner_and_category(repo, db, category, other_category):
    a = repo.create("seller", fields(category, name="A"))
    b = repo.create("seller", fields(category, name="B"))
    c = repo.create("seller", fields(other_category, name="C"))
    repo.create("other", fields(category, name="D"))
    repo.mark_sold(b.id, "seller")

    assert {l.id for l in repo.list_by_owner("seller")} == {a.id, b.id, c.id}
    assert {l.id for l in repo.list_by_owner("seller", active_only=True)} == {a.id, c.id}

    similar = repo.list_by_category(category.id, exclude_id=a.id)
    assert [l.name for l in similar] == ["D"]


def test_search_runs_discovery_over_active_listings(repo, category, other_category):
    repo.create("seller", fields(category, name="Cheap pen", price=20))
    repo.create("seller", fields(category, name="Fancy pen", price=900))
    sold = repo.create("seller", fields(category, name="Sold pen", price=50))
    repo.create("seller", fields(other_category, name="Laptop", price=30000))
    repo.mark_sold(sold.id, "seller")

    result = repo.search(ListingFilters(query="pen", sort="price_desc"))
    assert [l.name for l in result] == ["Fancy pen", "Cheap pen"]
