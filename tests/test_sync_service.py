import httpx
import pytest
from sqlalchemy import select

import db
import sync_service
from models import Card, CardSet, PriceHistory, PricingData
from sync_service import (
    ApiKeyStore, DataSyncService, MissingApiKey, calculate_roi, map_card, map_set, merge_first_non_null,
)

pytestmark = pytest.mark.anyio

SETS_PAYLOAD = {"data": [{
    "id": "base1", "name": "Base", "series": "Base", "total": 102, "releaseDate": "1999/01/09",
    "legalities": {"unlimited": "Legal"}, "images": {"symbol": "sym.png", "logo": "logo.png"},
}]}
CARDS_PAYLOAD = {"data": [{
    "id": "base1-4", "name": "Charizard", "number": "4", "rarity": "Rare Holo", "supertype": "Pokémon",
    "artist": "Mitsuhiro Arita", "set": {"id": "base1", "name": "Base", "releaseDate": "1999/01/09"},
    "images": {"small": "s.png", "large": "l.png"}, "tcgplayer": {"id": 42},
}]}


def tcg_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/sets"):
        return httpx.Response(200, json=SETS_PAYLOAD)
    if request.url.path.endswith("/cards"):
        return httpx.Response(200, json=CARDS_PAYLOAD)
    return httpx.Response(404)


def pricing_handler(ppt_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.pricecharting.com":
            return httpx.Response(200, json={"products": [
                {"productName": "Blastoise Base Set", "price": "$80"},
                {"productName": "Charizard Base Set", "price": "$150.00", "psa10Price": "$5,000.00"},
            ]})
        if request.url.host == "api.pokemonpricetracker.com":
            if ppt_status != 200:
                return httpx.Response(ppt_status)
            return httpx.Response(200, json={"current_price": 175, "psa_9_price": 800, "trending_score": 80})
        return httpx.Response(404)
    return handler


@pytest.fixture
def keys(monkeypatch):
    monkeypatch.setenv("POKEMONTCG_API_KEY", "tcg-key")
    monkeypatch.setenv("PRICECHARTING_API_KEY", "pc-key")
    monkeypatch.setenv("POKEMONPRICETRACKER_API_KEY", "ppt-key")
    monkeypatch.setattr(sync_service, "SYNC_DELAY", 0)


def test_merge_first_non_null():
    merged = merge_first_non_null([
        {"ungraded_price": 150, "psa_10_price": None},
        {"ungraded_price": 175, "psa_10_price": 5000, "trending_score": 80},
    ])
    assert merged == {"ungraded_price": 150, "psa_10_price": 5000, "trending_score": 80}


def test_calculate_roi():
    assert calculate_roi(150, 5000) == pytest.approx(3233.33, abs=0.01)
    assert calculate_roi(None, 5000) == 0
    assert calculate_roi(0, 5000) == 0


def test_map_set_and_card():
    assert map_set(SETS_PAYLOAD["data"][0])["legal_standard"] == "unknown"
    row = map_card(CARDS_PAYLOAD["data"][0])
    assert row["set_id"] == "base1"
    assert row["card_type"] == "Pokémon"
    assert row["tcgplayer_id"] == "42"
    assert row["image_url_large"] == "l.png"


async def test_pricing_prefers_pricecharting_and_merges(keys):
    async with httpx.AsyncClient(transport=httpx.MockTransport(pricing_handler())) as http:
        service = DataSyncService(None, ApiKeyStore(None), http)
        pricing = await service.pricing_from_multiple_sources("Charizard", "Base")

    assert pricing["ungraded_price"] == 150
    assert pricing["psa_10_price"] == 5000
    assert pricing["trending_score"] == 80
    assert pricing["data_source"] == "multiple_apis"
    assert pricing["roi_percentage"] == pytest.approx(3233.33, abs=0.01)


async def test_pricing_tolerates_one_failing_source(keys):
    async with httpx.AsyncClient(transport=httpx.MockTransport(pricing_handler(ppt_status=500))) as http:
        service = DataSyncService(None, ApiKeyStore(None), http)
        pricing = await service.pricing_from_multiple_sources("Charizard")

    assert pricing["data_source"] == "pricecharting"
    assert pricing["ungraded_price"] == 150


async def test_pricing_returns_none_without_any_source(monkeypatch):
    for var in ("PRICECHARTING_API_KEY", "POKEMONPRICETRACKER_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    async with httpx.AsyncClient(transport=httpx.MockTransport(pricing_handler())) as http:
        service = DataSyncService(None, ApiKeyStore(None), http)
        assert await service.pricing_from_multiple_sources("Charizard") is None


async def test_sync_sets_and_cards_are_idempotent(database, keys):
    async with httpx.AsyncClient(transport=httpx.MockTransport(tcg_handler)) as http:
        async with db.get_session() as session:
            service = DataSyncService(session, ApiKeyStore(session), http)
            assert await service.sync_cards_for_set("base1") == 0
            assert await service.sync_sets() == 1
            assert await service.sync_sets() == 1
            assert await service.sync_cards_for_set("base1", limit=10) == 1
            assert await service.sync_cards_for_set("base1", limit=10) == 1

    async with db.get_session() as session:
        sets = (await session.execute(select(CardSet))).scalars().all()
        cards = (await session.execute(select(Card))).scalars().all()
    assert [s.id for s in sets] == ["base1"]
    assert [(c.id, c.set_id) for c in cards] == [("base1-4", "base1")]


async def test_sync_pricing_for_card_upserts_aggregate_row(seeded, keys):
    async with httpx.AsyncClient(transport=httpx.MockTransport(pricing_handler())) as http:
        async with db.get_session() as session:
            service = DataSyncService(session, ApiKeyStore(session), http)
            await service.sync_pricing_for_card("base1-4", "Charizard", "Base")
            await service.sync_pricing_for_card("base1-4", "Charizard", "Base")

    async with db.get_session() as session:
        rows = (await session.execute(
            select(PricingData).where(PricingData.card_id == "base1-4")
        )).scalars().all()
        history = (await session.execute(select(PriceHistory))).scalars().all()

    assert len(rows) == 1
    assert rows[0].source == "aggregate"
    assert rows[0].data_source == "multiple_apis"
    assert rows[0].trending_score == 80
    assert [(h.card_id, h.price) for h in history] == [("base1-4", 150)]


async def test_populate_cards_requires_key(database, monkeypatch):
    monkeypatch.delenv("POKEMONTCG_API_KEY", raising=False)
    async with httpx.AsyncClient(transport=httpx.MockTransport(tcg_handler)) as http:
        async with db.get_session() as session:
            service = DataSyncService(session, ApiKeyStore(session), http)
            with pytest.raises(MissingApiKey, match="PokemonTCG.io API key not found"):
                await service.populate_cards()


async def test_user_key_wins_over_environment(database, monkeypatch):
    from models import UserApiKey

    monkeypatch.setenv("PRICECHARTING_API_KEY", "env-key")
    async with db.get_session() as session:
        session.add(UserApiKey(user_id="user-1", service="pricecharting", api_key="user-key"))
        session.add(UserApiKey(user_id="user-2", service="pricecharting", api_key="off", is_active=False))
        await session.commit()

        assert await ApiKeyStore(session, "user-1").get("pricecharting") == "user-key"
        assert await ApiKeyStore(session, "user-2").get("pricecharting") == "env-key"
        assert await ApiKeyStore(session).get("pricecharting") == "env-key"


async def test_pricing_ignores_tracker_payload_that_is_not_an_object(keys):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.pokemonpricetracker.com":
            return httpx.Response(200, json=[{"current_price": 175}])
        return pricing_handler()(request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        service = DataSyncService(None, ApiKeyStore(None), http)
        pricing = await service.pricing_from_multiple_sources("Charizard")

    assert pricing["ungraded_price"] == 150
    assert pricing["data_source"] == "pricecharting"


async def test_cards_without_name_are_skipped(database, keys):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/sets"):
            return httpx.Response(200, json=SETS_PAYLOAD)
        return httpx.Response(200, json={"data": [
            {"id": "base1-4", "set": {"id": "base1"}},
            CARDS_PAYLOAD["data"][0] | {"id": "base1-5", "name": "Clefairy"},
        ]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        async with db.get_session() as session:
            service = DataSyncService(session, ApiKeyStore(session), http)
            await service.sync_sets()
            assert await service.sync_cards_for_set("base1") == 1

    async with db.get_session() as session:
        cards = (await session.execute(select(Card))).scalars().all()
    assert [c.name for c in cards] == ["Clefairy"]


def test_synced_rows_carry_aware_timestamps():
    assert map_set(SETS_PAYLOAD["data"][0])["updated_at"].tzinfo is not None
    assert map_card(CARDS_PAYLOAD["data"][0])["updated_at"].tzinfo is not None
    for table in (CardSet.__table__, Card.__table__, PricingData.__table__):
        for column in table.columns:
            if column.name in ("created_at", "updated_at", "last_updated"):
                assert column.type.timezone is True
