from datetime import timedelta

from azure.core.exceptions import ServiceRequestError
from starlette.datastructures import UploadFile

from conftest import CDN, auth_headers, image_bytes, image_url
from marketplace.core.config import settings
from marketplace.core.deps import get_media_pipeline
from marketplace.main import app
from marketplace.models.listing import Listing
from marketplace.models.report import Report
from marketplace.services import storage as storage_module
from marketplace.services.media import MB, MediaPipeline
from marketplace.services.storage import get_storage_optional
from marketplace.utils.clock import utcnow

SELLER = auth_headers("seller", email="sam@campus.edu", name="Sam Seller")
BUYER = auth_headers("buyer", email="bea@campus.edu", name="Bea Buyer")


def create_listing(client, category, headers=SELLER, **overrides):
    body = {
        "name": "Desk lamp",
        "description": "Warm light",
        "price": 300,
        "categoryId": category.id,
        "condition": "Good",
        "productAgeMonths": 12,
        "images": [image_url("lamp")],
    }
    body.update(overrides)
    r = client.post("/api/listings", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_categories_sorted_by_name(client, db):
    names = [c["name"] for c in client.get("/api/categories").json()]
    assert names == sorted(names)
    assert "Books" in names


def test_onboarding_flow(client):
    r = client.post("/api/profiles", json={"phone": "+91 98765 43210"}, headers=SELLER)
    assert r.status_code == 201
    body = r.json()
    assert body["name"] == "Sam Seller"
    assert body["email"] == "sam@campus.edu"
    assert body["phone"] == "+91 98765 43210"

    again = client.post("/api/profiles", json={}, headers=SELLER)
    assert again.status_code == 409
    assert again.json()["detail"] == "PROFILE_EXISTS"

    r = client.patch("/api/profiles/me", json={"phone": "12345"}, headers=SELLER)
    assert r.json()["phone"] == "12345"
    assert client.get("/api/profiles/me", headers=SELLER).json()["name"] == "Sam Seller"


def test_onboarding_needs_a_name(client):
    r = client.post("/api/profiles", json={}, headers=auth_headers("anon-name"))
    assert r.status_code == 400
    assert r.json()["detail"] == "NAME_REQUIRED"


def test_create_and_read_listing(client, seller, buyer, category):
    created = create_listing(client, category)

    assert created["ownerId"] == "seller"
    assert created["isActive"] is True
    assert created["isOwner"] is True
    assert created["category"]["key"] == "books"

    r = client.get(f"/api/listings/{created['id']}", headers=BUYER)
    body = r.json()
    assert body["isOwner"] is False
    assert body["isSaved"] is False
    assert body["isInterested"] is False
    assert body["interestedCount"] == 0

    anon = client.get(f"/api/listings/{created['id']}").json()
    assert anon["isOwner"] is False
    assert anon["isSaved"] is None


def test_create_validation_errors(client, seller, category):
    r = client.post(
        "/api/listings",
        json={"name": "Lamp", "categoryId": category.id, "condition": "Good", "images": []},
        headers=SELLER,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "NO_IMAGES"

    r = client.post("/api/listings", json={"name": "Lamp", "price": "cheap"}, headers=SELLER)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


def test_missing_listing_is_404(client):
    r = client.get("/api/listings/9999")
    assert r.status_code == 404
    assert r.json() == {"detail": "LISTING_NOT_FOUND", "message": "Listing not found"}


def test_browse_filters_sorts_and_pages(client, seller, category, other_category):
    create_listing(client, category, name="Cheap pen", price=20)
    create_listing(client, category, name="Fountain pen", price=800)
    create_listing(client, category, name="Pen on request", price=None)
    create_listing(client, other_category, name="Pen drive", price=2000)

    r = client.get("/api/listings", params={"minPrice": 100, "maxPrice": 1000, "sortBy": "price_high"})
    names = [c["name"] for c in r.json()["data"]]
    assert names == ["Fountain pen", "Pen on request"]

    r = client.get("/api/listings", params={"q": "pen", "category": category.id, "sortBy": "price_low"})
    assert [c["name"] for c in r.json()["data"]] == ["Pen on request", "Cheap pen", "Fountain pen"]

    meta = client.get("/api/listings", params={"sortBy": "bogus"}).json()["meta"]
    assert meta == {"page": 1, "size": 12, "total": 4, "totalPages": 1}


def test_browse_last_page(client, db, seller, category):
    for i in range(25):
        create_listing(client, category, name=f"Item {i}")
    body = client.get("/api/listings", params={"page": 3}).json()
    assert len(body["data"]) == 1
    assert body["meta"]["total"] == 25
    assert body["meta"]["totalPages"] == 3


def test_expired_and_sold_listings_drop_out_of_browse(client, db, seller, category):
    expired = create_listing(client, category, name="Old")
    sold = create_listing(client, category, name="Gone")
    create_listing(client, category, name="Fresh")

    db.get(Listing, expired["id"]).expires_at = utcnow() - timedelta(days=1)
    db.commit()
    r = client.post(f"/api/listings/{sold['id']}/sold", json={"sold": True}, headers=SELLER)
    assert r.json()["isActive"] is False

    assert [c["name"] for c in client.get("/api/listings").json()["data"]] == ["Fresh"]

    mine = client.get("/api/listings/my", headers=SELLER).json()
    assert len(mine) == 3
    active = client.get("/api/listings/my", params={"activeOnly": True}, headers=SELLER).json()
    assert [c["name"] for c in active] == ["Fresh"]


def test_only_owner_can_edit_or_delete(client, seller, buyer, category):
    created = create_listing(client, category)

    r = client.patch(f"/api/listings/{created['id']}", json={"price": 1}, headers=BUYER)
    assert r.status_code == 403
    assert r.json()["detail"] == "NOT_LISTING_OWNER"
    assert client.delete(f"/api/listings/{created['id']}", headers=BUYER).status_code == 403

    r = client.patch(f"/api/listings/{created['id']}", json={"price": 250, "name": "Lamp"}, headers=SELLER)
    assert r.json()["price"] == 250
    assert r.json()["name"] == "Lamp"
    assert r.json()["description"] == "Warm light"


def test_delete_cleans_up_images(client, storage, seller, category):
    created = create_listing(client, category, images=[image_url("a"), image_url("b")])

    r = client.delete(f"/api/listings/{created['id']}", headers=SELLER)

    assert r.status_code == 200
    assert client.get(f"/api/listings/{created['id']}").status_code == 404
    assert len(storage.deleted) == 2


def test_similar_listings(client, seller, category, other_category):
    base = create_listing(client, category, name="Lamp")
    create_listing(client, category, name="Bulb")
    create_listing(client, other_category, name="Phone")

    similar = client.get(f"/api/listings/{base['id']}/similar").json()
    assert [c["name"] for c in similar] == ["Bulb"]
    assert similar[0]["thumbnail"] == image_url("lamp")


def test_interest_toggle_and_roster(client, mailer, seller, buyer, category):
    created = create_listing(client, category)
    url = f"/api/listings/{created['id']}/interest"

    r = client.put(url, json={"interested": True}, headers=BUYER)
    assert r.json() == {"listingId": created["id"], "interested": True, "count": 1, "alreadyMarked": False}
    r = client.put(url, json={"interested": True}, headers=BUYER)
    assert r.json()["alreadyMarked"] is True
    assert r.json()["count"] == 1

    # background task ran before the client returned
    assert len(mailer.sent) == 1
    assert mailer.sent[0].to == "sam@campus.edu"

    roster = client.get(f"/api/listings/{created['id']}/interested", headers=SELLER).json()
    assert roster["count"] == 1
    assert roster["buyers"][0]["name"] == "Bea Buyer"
    assert client.get(f"/api/listings/{created['id']}/interested", headers=BUYER).status_code == 403

    card = client.get("/api/listings").json()["data"][0]
    assert card["interestedCount"] == 1

    r = client.delete(url, headers=BUYER)
    assert r.json()["interested"] is False
    assert r.json()["count"] == 0
    assert client.get(url, headers=BUYER).json()["interested"] is False
    assert len(mailer.sent) == 2


def test_interest_needs_profile(client, seller, category):
    created = create_listing(client, category)
    r = client.put(
        f"/api/listings/{created['id']}/interest", json={"interested": True}, headers=auth_headers("drifter")
    )
    assert r.status_code == 403


def test_wishlist_endpoints(client, seller, buyer, category):
    created = create_listing(client, category)
    url = f"/api/listings/{created['id']}/wishlist"

    assert client.put(url, json={"saved": True}, headers=BUYER).json()["saved"] is True
    assert client.put(url, json={"saved": True}, headers=BUYER).status_code == 200
    saved = client.get("/api/wishlist", headers=BUYER).json()
    assert [c["id"] for c in saved] == [created["id"]]
    assert client.get(f"/api/listings/{created['id']}", headers=BUYER).json()["isSaved"] is True

    assert client.delete(url, headers=BUYER).json()["saved"] is False
    assert client.get("/api/wishlist", headers=BUYER).json() == []


def test_public_profile_lists_active_listings(client, seller, category):
    create_listing(client, category, name="Lamp")
    r = client.get("/api/profiles/seller", headers=SELLER)
    body = r.json()
    assert body["name"] == "Sam Seller"
    assert body["isOwnProfile"] is True
    assert [c["name"] for c in body["listings"]] == ["Lamp"]
    assert client.get("/api/profiles/nobody").status_code == 404


def test_report_listing(client, db, seller, buyer, category):
    created = create_listing(client, category)
    r = client.post(
        f"/api/listings/{created['id']}/report", json={"reason": "spam", "details": "duplicate post"}, headers=BUYER
    )
    assert r.status_code == 201
    assert r.json()["status"] == "pending"
    assert db.query(Report).count() == 1
    assert client.post("/api/listings/999/report", json={"reason": "spam"}, headers=BUYER).status_code == 404


def test_image_upload(client, storage, seller):
    files = [
        ("files", ("a.png", image_bytes(), "image/png")),
        ("files", ("b.jpg", image_bytes("JPEG"), "image/jpeg")),
    ]
    r = client.post("/api/images", files=files, data={"category": "Books & Notes"}, headers=SELLER)

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["partial"] is False
    assert len(body["urls"]) == 2
    assert all(u.startswith(f"{CDN}/listing-images/seller/books-notes/") for u in body["urls"])
    assert len(storage.objects) == 2


def test_image_upload_partial_failure(client, storage, seller):
    files = [
        ("files", ("a.png", image_bytes(), "image/png")),
        ("files", ("doc.pdf", b"%PDF-1.4", "application/pdf")),
    ]
    body = client.post("/api/images", files=files, headers=SELLER).json()

    assert body["partial"] is True
    assert len(body["urls"]) == 1
    assert body["errors"][0].startswith("Image 2 (doc.pdf)")


def test_image_upload_all_failed(client, seller):
    files = [("files", ("doc.pdf", b"%PDF-1.4", "application/pdf"))]
    r = client.post("/api/images", files=files, headers=SELLER)
    assert r.status_code == 400
    assert r.json()["detail"] == "PARTIAL_FAILURE"
    assert r.json()["succeeded"] == []


def test_image_upload_too_many(client, storage, seller):
    files = [("files", (f"{i}.png", image_bytes(), "image/png")) for i in range(4)]
    r = client.post("/api/images", files=files, headers=SELLER)
    assert r.status_code == 400
    assert r.json()["detail"] == "TOO_MANY_IMAGES"
    assert storage.objects == {}


def test_image_upload_reads_at_most_the_size_cap(client, storage, seller, monkeypatch):
    sizes = []
    original_read = UploadFile.read

    async def recording_read(self, size=-1):
        sizes.append(size)
        return await original_read(self, size)

    monkeypatch.setattr(UploadFile, "read", recording_read)
    pipeline = MediaPipeline(storage, max_upload_mb=0.01)
    app.dependency_overrides[get_media_pipeline] = lambda: pipeline

    files = [("files", ("big.png", b"0" * (MB // 10), "image/png"))]
    r = client.post("/api/images", files=files, headers=SELLER)

    assert r.status_code == 400
    assert "File too large" in r.json()["errors"][0]
    assert sizes == [pipeline.max_upload_bytes + 1]
    assert storage.objects == {}


class UnreachableServiceClient:
    @classmethod
    def from_connection_string(cls, conn_str, **kwargs):
        return cls()

    def create_container(self, name, public_access=None):
        raise ServiceRequestError("connection refused")


def test_unreachable_storage_keeps_reads_working(client, seller, category, monkeypatch):
    created = create_listing(client, category)
    app.dependency_overrides.pop(get_storage_optional)
    monkeypatch.setattr(settings, "AZURE_STORAGE_CONNECTION_STRING", "BlobEndpoint=http://127.0.0.1:1/acct")
    monkeypatch.setattr(storage_module, "BlobServiceClient", UnreachableServiceClient)
    get_storage_optional.cache_clear()
    try:
        assert client.get("/api/listings").status_code == 200
        assert client.get(f"/api/listings/{created['id']}").status_code == 200

        files = [("files", ("a.png", image_bytes(), "image/png"))]
        r = client.post("/api/images", files=files, headers=SELLER)
        assert r.status_code == 502
        assert r.json()["detail"] == "STORAGE_NOT_CONFIGURED"

        assert client.delete(f"/api/listings/{created['id']}", headers=SELLER).status_code == 200
    finally:
        get_storage_optional.cache_clear()


def test_openapi_publishes_one_bearer_scheme(client):
    schema = client.get("/openapi.json").json()

    assert list(schema["components"]["securitySchemes"]) == ["BearerAuth"]
    assert "security" not in schema["paths"]["/api/health"]["get"]
    assert schema["paths"]["/api/wishlist"]["get"]["security"] == [{"BearerAuth": []}]
