# sync_service.py
# Pulls sets, cards and prices from the upstream APIs and upserts them by natural key

import os
import asyncio
from datetime import date
from typing import Dict, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db import upsert
from logger import get_logger
from models import Card, CardSet, PricingData, PriceHistory, UserApiKey, utc_now
from pricing_sources import PokemonTCGAPI, PriceChartingAPI, PokemonPriceTrackerAPI
from utils import parse_price

log = get_logger("sync")

SYNC_DELAY = float(os.getenv("SYNC_DELAY", "0.1"))
PRICING_BATCH_SIZE = int(os.getenv("PRICING_BATCH_SIZE", "50"))
INITIAL_CARD_COUNT = 100

AGGREGATE_SOURCE = "aggregate"
SERVICE_ENV_KEYS = {
    "pokemontcg": "POKEMONTCG_API_KEY",
    "pricecharting": "PRICECHARTING_API_KEY",
    "pokemonpricetracker": "POKEMONPRICETRACKER_API_KEY",
}
SERVICE_LABELS = {
    "pokemontcg": "PokemonTCG.io",
    "pricecharting": "PriceCharting",
    "pokemonpricetracker": "PokemonPriceTracker",
}
PRICE_FIELDS = ["ungraded_price", "psa_10_price", "psa_9_price", "psa_8_price", "psa_7_price"]


class MissingApiKey(Exception):
    def __init__(self, service: str):
        self.service = service
        super().__init__(f"{SERVICE_LABELS.get(service, service)} API key not found")


class SyncError(Exception):
    pass


class ApiKeyStore:
    """
    Active key for a service from user_api_keys, falling back to the environment.
    """

    def __init__(self, session: Optional[AsyncSession], user_id: Optional[str] = None):
        self.session = session
        self.user_id = user_id

    async def get(self, service: str) -> Optional[str]:
        if self.session is not None and self.user_id:
            result = await self.session.execute(
                select(UserApiKey.api_key).where(
                    UserApiKey.user_id == self.user_id,
                    UserApiKey.service == service,
                    UserApiKey.is_active == True,  # noqa: E712
                )
            )
            key = result.scalars().first()
            if key:
                return key

        key = os.getenv(SERVICE_ENV_KEYS.get(service, ""), "")
        if not key:
            log.warning(f"⚠️ No API key found for {service}")
            return None
        return key


def calculate_roi(purchase_price, current_price) -> float:
    if not purchase_price or not current_price:
        return 0.0
    return (current_price - purchase_price) / purchase_price * 100


def merge_first_non_null(records: List[dict]) -> dict:
    merged: Dict = {}
    for record in records:
        for field, value in record.items():
            if merged.get(field) is None and value is not None:
                merged[field] = value
    return merged


def usable(records: List[dict], kind: str) -> List[dict]:
    """Upstream records that carry the id and name the tables require."""
    kept = [r for r in records if isinstance(r, dict) and r.get("id") and r.get("name")]
    if len(kept) < len(records):
        log.warning(f"⚠️ Skipped {len(records) - len(kept)} {kind} without id or name")
    return kept


def map_set(s: dict) -> dict:
    images = s.get("images") or {}
    return {
        "id": s["id"],
        "name": s.get("name"),
        "series": s.get("series"),
        "total": s.get("total"),
        "release_date": s.get("releaseDate"),
        "legal_standard": (s.get("legalities") or {}).get("standard") or "unknown",
        "symbol_url": images.get("symbol"),
        "logo_url": images.get("logo"),
        "updated_at": utc_now(),
    }


def map_card(c: dict, set_id: Optional[str] = None) -> dict:
    card_set = c.get("set") or {}
    images = c.get("images") or {}
    tcgplayer_id = (c.get("tcgplayer") or {}).get("id")
    cardmarket_id = (c.get("cardmarket") or {}).get("id")
    return {
        "id": c["id"],
        "name": c.get("name"),
        "set_id": set_id or card_set.get("id"),
        "set_name": card_set.get("name"),
        "number": c.get("number"),
        "rarity": c.get("rarity") or "Unknown",
        "card_type": c.get("supertype") or "Unknown",
        "artist": c.get("artist"),
        "release_date": card_set.get("releaseDate"),
        "image_url": images.get("small"),
        "image_url_large": images.get("large"),
        "tcgplayer_id": str(tcgplayer_id) if tcgplayer_id else None,
        "cardmarket_id": str(cardmarket_id) if cardmarket_id else None,
        "legal_standard": (c.get("legalities") or {}).get("standard") or "unknown",
        "updated_at": utc_now(),
    }


def pricing_row(card_id: str, source: str, pricing: dict) -> dict:
    row = {"card_id": card_id, "source": source, "data_source": pricing.get("data_source") or source}
    for field in PRICE_FIELDS:
        row[field] = pricing.get(field)
    row["roi_percentage"] = pricing.get("roi_percentage")
    row["trending_score"] = pricing.get("trending_score")
    row["last_updated"] = utc_now()
    return row


class DataSyncService:
    def __init__(self, session: AsyncSession, key_store: ApiKeyStore, http_client: httpx.AsyncClient):
        self.session = session
        self.key_store = key_store
        self.http = http_client

    async def _tcg(self) -> PokemonTCGAPI:
        return PokemonTCGAPI(self.http, await self.key_store.get("pokemontcg"))

    # === Sets ===
    async def sync_sets(self) -> int:
        log.info("🔄 Syncing Pokemon sets...")
        sets = await (await self._tcg()).get_sets()
        if not sets:
            log.info("No sets found to sync")
            return 0

        rows = [map_set(s) for s in usable(sets, "sets")]
        if not rows:
            return 0
        await self.session.execute(upsert(self.session, CardSet.__table__, rows, ["id"]))
        await self.session.commit()
        log.info(f"✅ Synced {len(rows)} Pokemon sets")
        return len(rows)

    # === Cards ===
    async def sync_cards_for_set(self, set_id: str, limit: int = 100) -> int:
        log.info(f"🔄 Syncing cards from set {set_id}...")
        if await self.session.get(CardSet, set_id) is None:
            log.warning(f"⚠️ Set {set_id} not found in database. Please sync sets first.")
            return 0

        cards = await (await self._tcg()).get_cards_by_set(set_id, 1, limit)
        if not cards:
            log.info(f"No cards found for set {set_id}")
            return 0

        rows = [map_card(c, set_id) for c in usable(cards, "cards")]
        if not rows:
            return 0
        await self.session.execute(upsert(self.session, Card.__table__, rows, ["id"]))
        await self.session.commit()
        log.info(f"✅ Synced {len(rows)} cards from set {set_id}")
        return len(rows)

    # === Pricing ===
    async def pricing_from_multiple_sources(self, card_name: str, set_name: str = "") -> Optional[dict]:
        pricecharting = PriceChartingAPI(self.http, await self.key_store.get("pricecharting"))
        tracker = PokemonPriceTrackerAPI(self.http, await self.key_store.get("pokemonpricetracker"))

        pc_result, ppt_result = await asyncio.gather(
            pricecharting.search_pokemon_prices(card_name),
            tracker.get_card_pricing(card_name, set_name),
            return_exceptions=True,
        )

        # PriceCharting first, then PokemonPriceTracker
        records = []
        sources = []
        if isinstance(pc_result, BaseException):
            log.warning(f"⚠️ PriceCharting lookup failed for {card_name}: {pc_result}")
        elif pc_result:
            wanted = card_name.lower()
            match = next(
                (item for item in pc_result
                 if isinstance(item, dict) and wanted in (item.get("productName") or "").lower()),
                None,
            )
            if match:
                records.append({
                    "ungraded_price": parse_price(match.get("price")),
                    "psa_10_price": parse_price(match.get("psa10Price")),
                    "psa_9_price": parse_price(match.get("psa9Price")),
                    "psa_8_price": parse_price(match.get("psa8Price")),
                    "psa_7_price": parse_price(match.get("psa7Price")),
                })
                sources.append("pricecharting")

        if isinstance(ppt_result, BaseException):
            log.warning(f"⚠️ PokemonPriceTracker lookup failed for {card_name}: {ppt_result}")
        elif isinstance(ppt_result, dict) and (ppt_result.get("current_price") or ppt_result.get("market_price")):
            records.append({
                "ungraded_price": parse_price(ppt_result.get("current_price") or ppt_result.get("market_price")),
                "trending_score": ppt_result.get("trending_score") or 0,
            })
            sources.append("pokemonpricetracker")

        if not records:
            return None

        combined = merge_first_non_null(records)
        combined["data_source"] = "multiple_apis" if len(sources) > 1 else sources[0]
        if combined.get("ungraded_price") and combined.get("psa_10_price"):
            combined["roi_percentage"] = calculate_roi(combined["ungraded_price"], combined["psa_10_price"])
        return combined

    async def sync_pricing_for_card(self, card_id: str, card_name: str, set_name: str = "") -> Optional[dict]:
        log.info(f"🔄 Syncing pricing for {card_name}...")
        pricing = await self.pricing_from_multiple_sources(card_name, set_name)
        if not pricing:
            log.info(f"No pricing data found for {card_name}")
            return None

        row = pricing_row(card_id, AGGREGATE_SOURCE, pricing)
        await self.session.execute(
            upsert(self.session, PricingData.__table__, [row], ["card_id", "source"])
        )
        await self._record_history([row])
        await self.session.commit()
        log.info(f"✅ Synced pricing for {card_name}")
        return pricing

    async def _record_history(self, rows: List[dict]):
        today = date.today()
        points = [
            {"card_id": r["card_id"], "source": r["source"], "price": r["ungraded_price"], "date": today}
            for r in rows
            if r.get("ungraded_price") is not None
        ]
        if points:
            await self.session.execute(
                upsert(self.session, PriceHistory.__table__, points, ["card_id", "source", "date"])
            )

    # === Batch jobs ===
    async def populate_cards(self) -> dict:
        api_key = await self.key_store.get("pokemontcg")
        if not api_key:
            raise MissingApiKey("pokemontcg")
        tcg = PokemonTCGAPI(self.http, api_key)

        log.info("📡 Fetching sets from PokemonTCG.io...")
        sets = await tcg.get_sets()
        if not sets:
            raise SyncError("Failed to fetch sets from PokemonTCG.io")
        set_rows = [map_set(s) for s in usable(sets, "sets")]
        if not set_rows:
            raise SyncError("Failed to fetch sets from PokemonTCG.io")
        await self.session.execute(upsert(self.session, CardSet.__table__, set_rows, ["id"]))
        log.info(f"✅ Successfully inserted {len(set_rows)} sets")

        log.info("📡 Fetching cards from PokemonTCG.io...")
        page = await tcg.get_all_cards(page=1, page_size=INITIAL_CARD_COUNT)
        cards = page.get("data") or []
        card_rows = [map_card(c) for c in usable(cards, "cards")]
        if card_rows:
            await self.session.execute(upsert(self.session, Card.__table__, card_rows, ["id"]))
        await self.session.commit()
        log.info(f"✅ Successfully inserted {len(card_rows)} cards")

        return {
            "success": True,
            "sets_inserted": len(set_rows),
            "cards_inserted": len(card_rows),
            "message": "Database populated successfully",
        }

    async def populate_pricing(self, batch_size: int = PRICING_BATCH_SIZE) -> dict:
        api_key = await self.key_store.get("pricecharting")
        if not api_key:
            raise MissingApiKey("pricecharting")
        pricecharting = PriceChartingAPI(self.http, api_key)

        result = await self.session.execute(select(Card).limit(batch_size))
        cards = result.scalars().all()
        log.info(f"📦 Processing pricing for {len(cards)} cards")

        rows = []
        for card in cards:
            if card.tcgplayer_id:
                data = await pricecharting.get_product(card.tcgplayer_id)
                if isinstance(data, dict) and data:
                    pricing = {
                        "ungraded_price": parse_price(data.get("price")),
                        "psa_10_price": parse_price(data.get("psa10")),
                        "psa_9_price": parse_price(data.get("psa9")),
                        "psa_8_price": parse_price(data.get("psa8")),
                    }
                    if pricing["ungraded_price"] and pricing["psa_10_price"]:
                        pricing["roi_percentage"] = calculate_roi(pricing["ungraded_price"], pricing["psa_10_price"])
                    rows.append(pricing_row(card.id, "pricecharting", pricing))

            # Fixed delay between upstream calls
            await asyncio.sleep(SYNC_DELAY)

        if rows:
            await self.session.execute(
                upsert(self.session, PricingData.__table__, rows, ["card_id", "source"])
            )
            await self._record_history(rows)
        await self.session.commit()
        log.info(f"✅ Successfully inserted pricing for {len(rows)} cards")

        return {
            "success": True,
            "cards_processed": len(cards),
            "pricing_inserted": len(rows),
            "message": "Pricing data populated successfully",
        }
