import pytest

from config import settings
from models.story import Story
from services.session_token import create_session_token


AUTHOR_ID = "story-author"
OTHER_ID = "story-reader"
MODERATOR_ID = "story-moderator"
AUTHOR_HEADER = {"Authorization": f"Bearer {create_session_token(AUTHOR_ID)['token']}"}
OTHER_HEADER = {"Authorization": f"Bearer {create_session_token(OTHER_ID)['token']}"}
MODERATOR_HEADER = {"Authorization": f"Bearer {create_session_token(MODERATOR_ID)['token']}"}


@pytest.mark.asyncio
async def test_list_filters_and_relevance(integration_client, make_story_category, make_location, make_story):
    legends = await make_story_category("Legenda")
    history = await make_story_category("Sejarah")
    toba = await make_location("Danau Toba", "landmark")
    await make_story(legends.id, title="Asal Usul Danau Toba", location_id=toba.id, time_period="pre-colonial")
    await make_story(history.id, title="Perang Padri", summary="Konflik di Sumatra Barat", time_period="colonial")
    await make_story(legends.id, title="Malin Kundang", status="draft")

    everything = await integration_client.get("/stories")
    assert everything.json()["total_count"] == 2

    by_period = await integration_client.get("/stories?time_period=colonial")
    assert [item["title"] for item in by_period.json()["items"]] == ["Perang Padri"]

    by_location = await integration_client.get(f"/stories?location_id={toba.id}")
    assert by_location.json()["items"][0]["location"]["name"] == "Danau Toba"

    relevance = await integration_client.get("/stories?search=toba&sort=relevance")
    item = relevance.json()["items"][0]
    assert item["title"] == "Asal Usul Danau Toba"
    assert item["relevance_score"] == 4

    alphabetical = await integration_client.get("/stories?sort=alphabetical")
    assert [i["title"] for i in alphabetical.json()["items"]] == ["Asal Usul Danau Toba", "Perang Padri"]


@pytest.mark.asyncio
async def test_create_update_archive_story(integration_client, make_story_category):
    category = await make_story_category()

    missing = await integration_client.post("/stories", json={"title": "Tanpa isi"}, headers=AUTHOR_HEADER)
    assert missing.json()["error"] == "Missing required fields: title, content, category_id"

    bad_source = await integration_client.post(
        "/stories",
        json={
            "title": "Roro Jonggrang",
            "content": "Seribu candi dalam semalam.",
            "category_id": category.id,
            "sources": [{"source_type": "rumor"}],
        },
        headers=AUTHOR_HEADER,
    )
    assert bad_source.json()["error"] == "Invalid source type"

    created = await integration_client.post(
        "/stories",
        json={
            "title": "Roro Jonggrang",
            "content": "Seribu candi dalam semalam.",
            "category_id": category.id,
            "latitude": -7.752,
            "longitude": 110.491,
            "historical_figures": ["Bandung Bondowoso"],
            "sources": [{"source_type": "oral_tradition", "source_title": "Cerita rakyat Prambanan"}],
            "images": [{"image_url": "https://img.example.com/prambanan.jpg"}],
            "status": "draft",
        },
        headers=AUTHOR_HEADER,
    )
    assert created.status_code == 201
    story = created.json()["story"]
    assert story["status"] == "draft"
    assert story["primary_image"] == "https://img.example.com/prambanan.jpg"
    assert story["sources"][0]["source_type"] == "oral_tradition"

    assert (await integration_client.get(f"/stories/{story['id']}")).status_code == 404
    assert (await integration_client.get(f"/stories/{story['id']}", headers=AUTHOR_HEADER)).status_code == 200

    forbidden = await integration_client.put(
        f"/stories/{story['id']}",
        json={"status": "published"},
        headers=OTHER_HEADER,
    )
    assert forbidden.status_code == 403

    published = await integration_client.put(
        f"/stories/{story['id']}",
        json={"status": "published", "summary": "Legenda Candi Prambanan"},
        headers=AUTHOR_HEADER,
    )
    assert published.json()["story"]["status"] == "published"
    assert (await integration_client.get(f"/stories/{story['id']}")).status_code == 200

    archived = await integration_client.delete(f"/stories/{story['id']}", headers=AUTHOR_HEADER)
    assert archived.json() == {"message": "Story deleted successfully"}
    assert (await integration_client.get(f"/stories/{story['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_story_map_markers_clusters_and_bounds(integration_client, make_story_category, make_story):
    category = await make_story_category()
    await make_story(category.id, title="Monas", latitude=-6.1754, longitude=106.8272, trust_level=2)
    await make_story(category.id, title="Monas Timur", latitude=-6.1754, longitude=106.82725, trust_level=0)
    await make_story(category.id, title="Tanah Lot", latitude=-8.6212, longitude=115.0868, trust_level=4)
    await make_story(category.id, title="Tanpa Koordinat")

    resp = await integration_client.get("/stories/map")
    assert resp.status_code == 200
    payload = resp.json()
    assert [m["title"] for m in payload["markers"]] == ["Tanah Lot", "Monas", "Monas Timur"]
    assert payload["markers"][0]["label"] == "Terpercaya"
    assert len(payload["clusters"]) == 1
    assert payload["clusters"][0]["count"] == 2
    assert payload["bounds"] == [[-8.6212, 106.8272], [-6.1754, 115.0868]]
    assert payload["config"]["center"] == {"lat": -2.5489, "lng": 118.0149}


@pytest.mark.asyncio
async def test_story_verifications_and_moderation(
    integration_client,
    session_maker,
    monkeypatch,
    make_story_category,
    make_story,
):
    monkeypatch.setattr(settings, "MODERATOR_USER_IDS", [MODERATOR_ID])
    category = await make_story_category()
    story = await make_story(category.id)
    url = f"/stories/{story.id}/verifications"

    invalid = await integration_client.post(url, json={"verification_type": "gossip"}, headers=OTHER_HEADER)
    assert invalid.status_code == 400

    created = await integration_client.post(
        url,
        json={"verification_type": "local_confirmation", "evidence_text": "Saya tinggal di sana."},
        headers=OTHER_HEADER,
    )
    assert created.status_code == 201
    verification = created.json()["verification"]

    edited = await integration_client.put(
        f"{url}?verification_id={verification['id']}",
        json={"evidence_text": "Saya lahir di sana."},
        headers=OTHER_HEADER,
    )
    assert edited.json()["verification"]["is_verified"] is False

    approved = await integration_client.post(
        f"/moderation/story-verifications/{verification['id']}/approve",
        headers=MODERATOR_HEADER,
    )
    assert approved.json()["trust_level"] == 1

    listing = await integration_client.get(url)
    assert listing.json()["summary"]["local_confirmation"] == 1

    async with session_maker() as session:
        stored = await session.get(Story, story.id)
    assert stored.verification_count == 1
    assert stored.trust_level == 1


@pytest.mark.asyncio
async def test_categories_and_locations(integration_client, make_story_category, make_location, make_story):
    category = await make_story_category("Kuliner")
    await make_story(category.id)
    await make_location("Yogyakarta", "province")
    await make_location("Bandung", "city")

    categories = await integration_client.get("/stories/categories?include_count=true")
    assert categories.json()["categories"][0]["story_count"] == 1

    locations = await integration_client.get("/locations")
    assert [loc["name"] for loc in locations.json()["locations"]] == ["Bandung", "Yogyakarta"]

    provinces = await integration_client.get("/locations?type=province")
    assert [loc["name"] for loc in provinces.json()["locations"]] == ["Yogyakarta"]

    assert (await integration_client.get("/locations?type=planet")).status_code == 400


@pytest.mark.asyncio
async def test_coordinates_must_fall_inside_indonesia(integration_client, make_story_category, make_story):
    category = await make_story_category()
    body = {"title": "Merlion", "content": "Patung singa laut.", "category_id": category.id}

    outside = await integration_client.post(
        "/stories",
        json={**body, "latitude": 1.2868, "longitude": 103.8545},
        headers=AUTHOR_HEADER,
    )
    assert outside.status_code == 400
    assert outside.json() == {"error": "Coordinates must be within Indonesia"}

    half = await integration_client.post("/stories", json={**body, "latitude": -6.2}, headers=AUTHOR_HEADER)
    assert half.json() == {"error": "latitude and longitude must be provided together"}

    story = await make_story(category.id, author_id=AUTHOR_ID, latitude=-6.1754, longitude=106.8272)
    moved = await integration_client.put(
        f"/stories/{story.id}",
        json={"longitude": 150.0},
        headers=AUTHOR_HEADER,
    )
    assert moved.status_code == 400

    nudged = await integration_client.put(
        f"/stories/{story.id}",
        json={"longitude": 106.8300},
        headers=AUTHOR_HEADER,
    )
    assert nudged.status_code == 200
    assert nudged.json()["story"]["longitude"] == 106.83
