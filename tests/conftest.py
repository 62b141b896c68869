import httpx
import pytest
from httpx import ASGITransport

import db
from main import app, get_http_client
from models import Card, CardSet, PricingData

USER = {"X-User-Id": "user-1"}
OTHER_USER = {"X-User-Id": "user-2"}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def database(tmp_path, anyio_backend):
    db.configure(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await db.init_models()
    yield
    await db.engine.dispose()
    db.configure(None)


@pytest.fixture
def demo_mode():
    db.configure(None)
    yield


@pytest.fixture
async def seeded(database, anyio_backend):
    async with db.get_session() as session:
        session.add(CardSet(id="base1", name="Base", series="Base", total=102, release_date="1999/01/09"))
        session.add(CardSet(id="jungle", name="Jungle", series="Base", total=64, release_date="1999/06/16"))
        session.add(Card(
            id="base1-4", name="Charizard", set_id="base1", set_name="Base", number="4",
            rarity="Rare Holo", card_type="Pokémon", tcgplayer_id="42",
        ))
        session.add(Card(
            id="base1-2", name="Blastoise", set_id="base1", set_name="Base", number="2",
            rarity="Rare Holo", card_type="Pokémon",
        ))
        session.add(Card(
            id="jungle-60", name="Pikachu", set_id="jungle", set_name="Jungle", number="60",
            rarity="Common", card_type="Pokémon",
        ))
        session.add(PricingData(
            card_id="base1-4", source="aggregate", ungraded_price=150, psa_10_price=5000,
            psa_9_price=800, roi_percentage=3233.3, trending_score=90,
        ))
        session.add(PricingData(
            card_id="jungle-60", source="aggregate", ungraded_price=5, psa_10_price=60,
            roi_percentage=1100, trending_score=40,
        ))
        await session.commit()


@pytest.fixture
async def client(anyio_backend):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def upstream():
    """Route outgoing API calls through an httpx.MockTransport handler."""

    def install(handler):
        async def override():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as c:
                yield c

        app.dependency_overrides[get_http_client] = override

    return install
