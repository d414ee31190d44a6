import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from main import app
from models.remedy import Remedy, RemedyIngredient
from routers import rate_limit
from services.session_token import create_session_token


AUTHOR_ID = "remedy-author"
OTHER_ID = "remedy-other"
AUTHOR_HEADER = {"Authorization": f"Bearer {create_session_token(AUTHOR_ID)['token']}"}
OTHER_HEADER = {"Authorization": f"Bearer {create_session_token(OTHER_ID)['token']}"}


@pytest.mark.asyncio
async def test_list_by_category_sorted_by_trust_level(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category("Pencernaan")
    other = await make_remedy_category("Kulit")
    for title, level in (("Temulawak", 4), ("Kunyit", 1), ("Jahe", 3)):
        await make_remedy(category.id, title=title, trust_level=level)
    await make_remedy(other.id, title="Lidah Buaya", trust_level=4)

    resp = await integration_client.get(
        f"/remedies?category_id={category.id}&sort=trust_level&page=1&limit=2"
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert [item["trust_level"] for item in payload["items"]] == [4, 3]
    assert [item["title"] for item in payload["items"]] == ["Temulawak", "Jahe"]
    assert payload["total_count"] == 3
    assert payload["has_next_page"] is True


@pytest.mark.asyncio
async def test_pages_are_disjoint_and_complete(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category()
    for index in range(7):
        await make_remedy(category.id, title=f"Ramuan {index}", trust_level=index % 2)

    seen = []
    page = 1
    while True:
        resp = await integration_client.get(f"/remedies?sort=trust_level&limit=3&page={page}")
        payload = resp.json()
        seen.extend(item["id"] for item in payload["items"])
        if not payload["has_next_page"]:
            break
        page += 1

    assert len(seen) == 7
    assert len(set(seen)) == 7
    assert page == 3


@pytest.mark.asyncio
async def test_list_hides_unpublished_and_hydrates_previews(
    integration_client,
    make_remedy_category,
    make_remedy,
    make_testimonial,
):
    category = await make_remedy_category()
    remedy = await make_remedy(
        category.id,
        title="Beras Kencur",
        ingredients=[("beras", True), ("kencur", True), ("gula aren", True), ("air", True), ("garam", False)],
        benefits=["pegal linu", "nafsu makan", "stamina", "batuk"],
        images=[("https://img.example.com/1.jpg", False), ("https://img.example.com/2.jpg", True)],
    )
    await make_remedy(category.id, title="Draf Jamu", status="draft")
    await make_remedy(category.id, title="Arsip Jamu", status="archived")
    await make_testimonial(remedy.id, "t-1", rating=5, is_verified=True)
    await make_testimonial(remedy.id, "t-2", rating=4, is_verified=True)
    await make_testimonial(remedy.id, "t-3", rating=1, is_verified=False)

    resp = await integration_client.get("/remedies")
    payload = resp.json()
    assert payload["total_count"] == 1
    item = payload["items"][0]
    assert item["primary_image"] == "https://img.example.com/2.jpg"
    assert [i["name"] for i in item["main_ingredients"]] == ["beras", "kencur", "gula aren"]
    assert len(item["benefits"]) == 3
    assert item["avg_rating"] == 4.5
    assert item["testimonial_count"] == 2


@pytest.mark.asyncio
async def test_ingredient_filter_applies_before_pagination(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category()
    for index in range(4):
        await make_remedy(category.id, title=f"Tanpa Jahe {index}", ingredients=[("kunyit", True)])
    for index in range(3):
        await make_remedy(category.id, title=f"Dengan Jahe {index}", ingredients=[("Jahe merah", True)])

    resp = await integration_client.get("/remedies?ingredients=jahe&limit=2&page=1")
    payload = resp.json()
    assert payload["total_count"] == 3
    assert len(payload["items"]) == 2
    assert all(item["title"].startswith("Dengan Jahe") for item in payload["items"])
    assert payload["has_next_page"] is True


@pytest.mark.asyncio
async def test_text_search_and_relevance_sort(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category("Herbal")
    await make_remedy(category.id, title="Wedang Uwuh", subtitle="Minuman jahe dan secang", trust_level=4)
    await make_remedy(category.id, title="Jahe Bakar", trust_level=0)
    await make_remedy(category.id, title="Sinom", description="Asam dan kunyit muda")

    resp = await integration_client.get("/remedies?search=jahe&sort=relevance")
    payload = resp.json()
    assert payload["total_count"] == 2
    assert [item["title"] for item in payload["items"]] == ["Jahe Bakar", "Wedang Uwuh"]
    assert [item["relevance_score"] for item in payload["items"]] == [3, 2]
    assert payload["search_query"] == "jahe"


@pytest.mark.asyncio
async def test_malformed_filters_are_rejected(integration_client):
    too_short = await integration_client.get("/remedies?search=a")
    assert too_short.status_code == 400
    assert too_short.json()["error"] == "Search query must be at least 2 characters long"

    bad_sort = await integration_client.get("/remedies?sort=sideways")
    assert bad_sort.status_code == 400

    bad_trust = await integration_client.get("/remedies?trust_level_min=high")
    assert bad_trust.status_code == 400
    assert "trust_level_min" in bad_trust.json()["error"]


@pytest.mark.asyncio
async def test_quick_search_rejects_short_query_without_database():
    class UnusableSession:
        async def execute(self, *args, **kwargs):
            raise AssertionError("database must not be queried")

    async def override_get_db():
        yield UnusableSession()

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.get("/remedies/search?q=a")
    finally:
        app.dependency_overrides.pop(get_db, None)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Search query must be at least 2 characters long"}


@pytest.mark.asyncio
async def test_quick_and_advanced_search(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category("Kunyit")
    await make_remedy(category.id, title="Kunyit Asam", region="Jawa Tengah", trust_level=2)
    await make_remedy(
        category.id,
        title="Jamu Pahitan",
        subtitle="Kunyit dan sambiloto",
        trust_level=4,
        ingredients=[("sambiloto", True)],
        benefits=["gatal kulit"],
    )

    quick = await integration_client.get("/remedies/search?q=kunyit")
    assert quick.status_code == 200
    results = quick.json()["results"]
    assert [r["title"] for r in results] == ["Kunyit Asam", "Jamu Pahitan"]
    assert results[0]["relevance_score"] == 5
    assert results[1]["snippet"] == "Kunyit dan sambiloto"

    advanced = await integration_client.post(
        "/remedies/search",
        json={"query": "kunyit", "benefits": ["kulit"], "trust_level_min": 3},
    )
    assert advanced.status_code == 200
    payload = advanced.json()
    assert payload["total_results"] == 1
    assert payload["items"][0]["title"] == "Jamu Pahitan"
    assert payload["filters_applied"]["benefits"] == ["kulit"]


@pytest.mark.asyncio
async def test_detail_visibility_and_view_count(integration_client, session_maker, make_remedy_category, make_remedy):
    category = await make_remedy_category()
    published = await make_remedy(category.id, author_id=AUTHOR_ID, ingredients=[("kunyit", True)])
    draft = await make_remedy(category.id, author_id=AUTHOR_ID, status="draft")

    first = await integration_client.get(f"/remedies/{published.id}")
    second = await integration_client.get(f"/remedies/{published.id}")
    assert first.status_code == 200
    assert first.json()["remedy"]["ingredients"] == second.json()["remedy"]["ingredients"]
    assert second.json()["remedy"]["view_count"] >= first.json()["remedy"]["view_count"]

    async with session_maker() as session:
        stored = await session.get(Remedy, published.id)
        assert stored.view_count == 2

    assert (await integration_client.get(f"/remedies/{draft.id}")).status_code == 404
    assert (await integration_client.get(f"/remedies/{draft.id}", headers=OTHER_HEADER)).status_code == 404
    own = await integration_client.get(f"/remedies/{draft.id}", headers=AUTHOR_HEADER)
    assert own.status_code == 200
    assert own.json()["remedy"]["status"] == "draft"

    missing = await integration_client.get("/remedies/does-not-exist")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Remedy not found"}


@pytest.mark.asyncio
async def test_detail_aggregates_only_verified_feedback(
    integration_client,
    make_remedy_category,
    make_remedy,
    make_testimonial,
    make_remedy_verification,
):
    category = await make_remedy_category()
    remedy = await make_remedy(category.id)
    await make_testimonial(remedy.id, "u1", rating=5, is_verified=True)
    await make_testimonial(remedy.id, "u2", rating=4, is_verified=True)
    await make_testimonial(remedy.id, "u3", rating=4, is_verified=True)
    await make_testimonial(remedy.id, "u4", rating=1, is_verified=False)
    await make_remedy_verification(remedy.id, "u1", "family_tradition", is_verified=True)
    await make_remedy_verification(remedy.id, "u2", "tried_personally", is_verified=True)
    await make_remedy_verification(remedy.id, "u3", "safety_concern", is_verified=False)

    resp = await integration_client.get(f"/remedies/{remedy.id}")
    detail = resp.json()["remedy"]
    assert detail["avg_rating"] == 4.3
    assert len(detail["testimonials"]) == 3
    assert detail["verification_summary"]["family_tradition_count"] == 1
    assert detail["verification_summary"]["tried_personally_count"] == 1
    assert detail["verification_summary"]["safety_concern_count"] == 0
    assert detail["verification_summary"]["total_count"] == 2
    assert all(t["review_status"] == "verified" for t in detail["testimonials"])


@pytest.mark.asyncio
async def test_create_remedy_with_children(integration_client, session_maker, make_remedy_category):
    category = await make_remedy_category()
    unauthenticated = await integration_client.post("/remedies", json={"title": "x"})
    assert unauthenticated.status_code == 401

    missing = await integration_client.post("/remedies", json={"title": "Jamu"}, headers=AUTHOR_HEADER)
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing required fields: title, description, category_id"

    resp = await integration_client.post(
        "/remedies",
        json={
            "title": "Wedang Jahe",
            "description": "Jahe rebus dengan gula merah.",
            "category_id": category.id,
            "ingredients": [
                {"name": "jahe", "amount": "2", "unit": "ruas", "is_main_ingredient": True},
                {"name": "gula merah", "amount": "1", "unit": "sdm"},
            ],
            "steps": [{"instruction": "Bakar jahe."}, {"instruction": "Rebus dengan air."}],
            "benefits": [{"benefit": "menghangatkan badan"}],
        },
        headers=AUTHOR_HEADER,
    )
    assert resp.status_code == 201
    remedy = resp.json()["remedy"]
    assert remedy["difficulty"] == "Sedang"
    assert remedy["status"] == "published"
    assert [i["order_index"] for i in remedy["ingredients"]] == [1, 2]
    assert [s["step_number"] for s in remedy["steps"]] == [1, 2]
    assert remedy["author_id"] == AUTHOR_ID


@pytest.mark.asyncio
async def test_invalid_child_is_rejected_before_any_write(integration_client, session_maker, make_remedy_category):
    category = await make_remedy_category()
    resp = await integration_client.post(
        "/remedies",
        json={
            "title": "Jamu Gagal",
            "description": "Tidak lengkap.",
            "category_id": category.id,
            "ingredients": [{"name": "kunyit"}, {"name": "  "}],
        },
        headers=AUTHOR_HEADER,
    )
    assert resp.status_code == 400

    async with session_maker() as session:
        remedies = (await session.execute(select(Remedy))).scalars().all()
        ingredients = (await session.execute(select(RemedyIngredient))).scalars().all()
    assert remedies == []
    assert ingredients == []


@pytest.mark.asyncio
async def test_failed_commit_rolls_back_parent_and_children(
    integration_client,
    session_maker,
    monkeypatch,
    make_remedy_category,
):
    category = await make_remedy_category()

    async def flush_then_fail(self):
        await self.flush()
        raise SQLAlchemyError("commit refused")

    monkeypatch.setattr(AsyncSession, "commit", flush_then_fail)
    resp = await integration_client.post(
        "/remedies",
        json={
            "title": "Beras Kencur",
            "description": "Beras dan kencur ditumbuk halus.",
            "category_id": category.id,
            "ingredients": [{"name": "beras", "is_main_ingredient": True}, {"name": "kencur"}],
            "steps": [{"instruction": "Rendam beras."}],
        },
        headers=AUTHOR_HEADER,
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to create remedy"}

    async with session_maker() as session:
        remedies = (await session.execute(select(Remedy))).scalars().all()
        ingredients = (await session.execute(select(RemedyIngredient))).scalars().all()
    assert remedies == []
    assert ingredients == []


@pytest.mark.asyncio
async def test_unknown_location_is_rejected(integration_client, make_remedy_category, make_remedy, make_location):
    category = await make_remedy_category()
    body = {
        "title": "Jamu Sirih",
        "description": "Rebusan daun sirih.",
        "category_id": category.id,
        "location_id": "no-such-location",
    }
    created = await integration_client.post("/remedies", json=body, headers=AUTHOR_HEADER)
    assert created.status_code == 400
    assert created.json() == {"error": "Unknown location_id"}

    remedy = await make_remedy(category.id, author_id=AUTHOR_ID)
    updated = await integration_client.put(
        f"/remedies/{remedy.id}",
        json={"location_id": "no-such-location"},
        headers=AUTHOR_HEADER,
    )
    assert updated.status_code == 400
    assert updated.json() == {"error": "Unknown location_id"}

    solo = await make_location("Surakarta")
    moved = await integration_client.put(
        f"/remedies/{remedy.id}",
        json={"location_id": solo.id},
        headers=AUTHOR_HEADER,
    )
    assert moved.status_code == 200
    assert moved.json()["remedy"]["location"]["name"] == "Surakarta"


@pytest.mark.asyncio
async def test_update_and_archive_are_author_only(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category()
    remedy = await make_remedy(category.id, author_id=AUTHOR_ID, ingredients=[("kunyit", True), ("asam", True)])

    forbidden = await integration_client.put(f"/remedies/{remedy.id}", json={"title": "X"}, headers=OTHER_HEADER)
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Forbidden"}

    updated = await integration_client.put(
        f"/remedies/{remedy.id}",
        json={"title": "Kunyit Asam Segar", "ingredients": [{"name": "kunyit", "is_main_ingredient": True}]},
        headers=AUTHOR_HEADER,
    )
    assert updated.status_code == 200
    body = updated.json()["remedy"]
    assert body["title"] == "Kunyit Asam Segar"
    assert [i["name"] for i in body["ingredients"]] == ["kunyit"]

    assert (await integration_client.delete(f"/remedies/{remedy.id}", headers=OTHER_HEADER)).status_code == 403
    archived = await integration_client.delete(f"/remedies/{remedy.id}", headers=AUTHOR_HEADER)
    assert archived.status_code == 200
    assert archived.json() == {"message": "Remedy deleted successfully"}

    listing = await integration_client.get("/remedies")
    assert listing.json()["total_count"] == 0
    assert (await integration_client.get(f"/remedies/{remedy.id}")).status_code == 404


@pytest.mark.asyncio
async def test_categories_with_counts_and_unique_names(integration_client, make_remedy_category, make_remedy):
    category = await make_remedy_category("Demam")
    await make_remedy(category.id)
    await make_remedy(category.id, status="draft")

    listing = await integration_client.get("/remedies/categories?include_count=true")
    assert listing.status_code == 200
    assert listing.json()["categories"][0]["remedy_count"] == 1

    created = await integration_client.post(
        "/remedies/categories",
        json={"name": "Batuk", "icon": "cough"},
        headers=AUTHOR_HEADER,
    )
    assert created.status_code == 201
    assert created.json()["category"]["color"] == "#10B981"

    duplicate = await integration_client.post(
        "/remedies/categories",
        json={"name": "Batuk", "icon": "cough"},
        headers=AUTHOR_HEADER,
    )
    assert duplicate.status_code == 400

    missing_icon = await integration_client.post(
        "/remedies/categories",
        json={"name": "Flu"},
        headers=AUTHOR_HEADER,
    )
    assert missing_icon.json()["error"] == "Missing required fields: name, icon"


@pytest.mark.asyncio
async def test_mutations_are_rate_limited_without_redis(
    integration_client,
    monkeypatch,
    make_remedy_category,
    make_remedy,
):
    async def redis_down(key, window_seconds):
        raise OSError("connection refused")

    category = await make_remedy_category()
    remedy = await make_remedy(category.id, author_id=AUTHOR_ID)
    monkeypatch.setattr(rate_limit, "_consume_redis_quota", redis_down)
    app.state.disable_rate_limits = False

    statuses = []
    for index in range(11):
        resp = await integration_client.post(
            "/remedies/categories",
            json={"name": f"Kategori {index}", "icon": "leaf"},
            headers=AUTHOR_HEADER,
        )
        statuses.append(resp.status_code)
    assert statuses == [201] * 10 + [429]

    for _ in range(30):
        assert (await integration_client.delete(f"/remedies/{remedy.id}", headers=AUTHOR_HEADER)).status_code == 200
    blocked = await integration_client.delete(f"/remedies/{remedy.id}", headers=AUTHOR_HEADER)
    assert blocked.status_code == 429
    assert blocked.json() == {"error": "Rate limit exceeded for remedy_delete. Try again later."}
