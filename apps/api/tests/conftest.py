import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.category import Category, RemedyCategory
from models.location import Location
from models.profile import Profile
from models.remedy import (
    Remedy,
    RemedyBenefit,
    RemedyImage,
    RemedyIngredient,
    RemedyTestimonial,
    RemedyVerification,
)
from models.story import Story
from routers import rate_limit


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "unseen.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def integration_client(session_maker, monkeypatch):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    # View-count bumps open their own session outside the request.
    monkeypatch.setattr("services.procedures.async_session_maker", session_maker)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def seed(session_maker):
    """Insert rows directly and return them detached, ids populated."""

    async def _seed(*rows):
        async with session_maker() as session:
            session.add_all(rows)
            await session.commit()
        return rows[0] if len(rows) == 1 else rows

    return _seed


@pytest.fixture
def make_profile(seed):
    async def _make(user_id: str, **overrides):
        fields = {"username": user_id, "full_name": user_id.title()}
        fields.update(overrides)
        return await seed(Profile(id=user_id, **fields))

    return _make


@pytest.fixture
def make_remedy_category(seed):
    async def _make(name: str = "Jamu", **overrides):
        fields = {"icon": "leaf", "color": "#10B981"}
        fields.update(overrides)
        return await seed(RemedyCategory(name=name, **fields))

    return _make


@pytest.fixture
def make_remedy(seed):
    async def _make(
        category_id: str,
        author_id: str = "author-1",
        ingredients=(),
        benefits=(),
        images=(),
        **overrides,
    ):
        fields = {
            "title": "Jamu Kunyit Asam",
            "description": "Minuman tradisional dari kunyit dan asam jawa.",
            "difficulty": "Mudah",
            "status": "published",
        }
        fields.update(overrides)
        remedy = Remedy(category_id=category_id, author_id=author_id, **fields)
        await seed(remedy)
        children = []
        for index, (name, is_main) in enumerate(ingredients, start=1):
            children.append(
                RemedyIngredient(remedy_id=remedy.id, name=name, is_main_ingredient=is_main, order_index=index)
            )
        for index, benefit in enumerate(benefits, start=1):
            children.append(RemedyBenefit(remedy_id=remedy.id, benefit=benefit, order_index=index))
        for index, (url, is_primary) in enumerate(images, start=1):
            children.append(RemedyImage(remedy_id=remedy.id, image_url=url, is_primary=is_primary, order_index=index))
        if children:
            await seed(*children)
        return remedy

    return _make


@pytest.fixture
def make_testimonial(seed):
    async def _make(remedy_id: str, user_id: str, rating: int = 5, is_verified: bool = False, **overrides):
        fields = {"testimonial": "Sangat membantu saat masuk angin."}
        fields.update(overrides)
        return await seed(
            RemedyTestimonial(remedy_id=remedy_id, user_id=user_id, rating=rating, is_verified=is_verified, **fields)
        )

    return _make


@pytest.fixture
def make_remedy_verification(seed):
    async def _make(remedy_id: str, user_id: str, verification_type: str = "family_tradition", **overrides):
        fields = {"evidence_text": "Resep nenek saya.", "is_positive": True, "is_verified": False}
        fields.update(overrides)
        return await seed(
            RemedyVerification(
                remedy_id=remedy_id,
                user_id=user_id,
                verification_type=verification_type,
                **fields,
            )
        )

    return _make


@pytest.fixture
def make_story_category(seed):
    async def _make(name: str = "Legenda", **overrides):
        fields = {"icon": "book"}
        fields.update(overrides)
        return await seed(Category(name=name, **fields))

    return _make


@pytest.fixture
def make_location(seed):
    async def _make(name: str, location_type: str = "city", **overrides):
        return await seed(Location(name=name, type=location_type, **overrides))

    return _make


@pytest.fixture
def make_story(seed):
    async def _make(category_id: str, author_id: str = "author-1", **overrides):
        fields = {
            "title": "Legenda Danau Toba",
            "content": "Kisah seorang nelayan dan ikan ajaib.",
            "status": "published",
        }
        fields.update(overrides)
        return await seed(Story(category_id=category_id, author_id=author_id, **fields))

    return _make
