# pricing_sources.py
# Thin async clients for the three upstream card/pricing APIs.
# Every public call returns an empty result instead of raising.

import os
from typing import Any, Dict, List, Optional

import httpx

from logger import get_logger

log = get_logger("pricing_sources")

POKEMONTCG_BASE_URL = os.getenv("POKEMONTCG_BASE_URL", "https://api.pokemontcg.io/v2")
PRICECHARTING_BASE_URL = os.getenv("PRICECHARTING_BASE_URL", "https://www.pricecharting.com/api")
POKEMONPRICETRACKER_BASE_URL = os.getenv("POKEMONPRICETRACKER_BASE_URL", "https://api.pokemonpricetracker.com")
API_TIMEOUT = float(os.getenv("API_TIMEOUT", "10"))
USER_AGENT = "TCG Investor Pro/1.0"


async def fetch_json(client: httpx.AsyncClient, url: str, **kwargs) -> Any:
    response = await client.get(url, timeout=API_TIMEOUT, **kwargs)
    response.raise_for_status()
    return response.json()


class PokemonTCGAPI:
    def __init__(self, client: httpx.AsyncClient, api_key: Optional[str] = None):
        self.client = client
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    async def get_sets(self) -> List[dict]:
        try:
            data = await fetch_json(
                self.client, f"{POKEMONTCG_BASE_URL}/sets",
                params={"page": 1, "pageSize": 250}, headers=self._headers(),
            )
            return data.get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"❌ Error fetching Pokemon sets: {e}")
            return []

    async def get_cards_by_set(self, set_id: str, page: int = 1, page_size: int = 250) -> List[dict]:
        try:
            data = await fetch_json(
                self.client, f"{POKEMONTCG_BASE_URL}/cards",
                params={"q": f"set.id:{set_id}", "page": page, "pageSize": page_size},
                headers=self._headers(),
            )
            return data.get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"❌ Error fetching cards for set {set_id}: {e}")
            return []

    async def search_cards(self, search_term: str, page: int = 1, page_size: int = 50) -> List[dict]:
        try:
            data = await fetch_json(
                self.client, f"{POKEMONTCG_BASE_URL}/cards",
                params={"q": f'name:"{search_term}"', "page": page, "pageSize": page_size},
                headers=self._headers(),
            )
            return data.get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            log.error(f'❌ Error searching cards for "{search_term}": {e}')
            return []

    async def get_all_cards(self, page: int = 1, page_size: int = 250) -> dict:
        try:
            return await fetch_json(
                self.client, f"{POKEMONTCG_BASE_URL}/cards",
                params={"page": page, "pageSize": page_size}, headers=self._headers(),
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"❌ Error fetching all cards: {e}")
            return {"data": [], "page": 1, "pageSize": 0, "count": 0, "totalCount": 0}


class PriceChartingAPI:
    def __init__(self, client: httpx.AsyncClient, api_key: Optional[str] = None):
        self.client = client
        self.api_key = api_key

    async def search_pokemon_prices(self, search_term: str) -> List[dict]:
        if not self.api_key:
            log.warning("⚠️ No PriceCharting API key available")
            return []
        try:
            data = await fetch_json(
                self.client, f"{PRICECHARTING_BASE_URL}/products",
                params={"t": f"{search_term} pokemon", "key": self.api_key},
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error(f'❌ Error searching prices for "{search_term}": {e}')
            return []
        if isinstance(data, dict) and "products" in data:
            return data["products"] or []
        return data if isinstance(data, list) else [data]

    async def get_product(self, product_id: str) -> Optional[dict]:
        if not self.api_key:
            log.warning("⚠️ No PriceCharting API key available")
            return None
        try:
            return await fetch_json(
                self.client, f"{PRICECHARTING_BASE_URL}/product",
                params={"t": self.api_key, "id": product_id},
                headers={"User-Agent": USER_AGENT},
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"❌ Error fetching PriceCharting product {product_id}: {e}")
            return None


class PokemonPriceTrackerAPI:
    def __init__(self, client: httpx.AsyncClient, api_key: Optional[str] = None):
        self.client = client
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}

    async def get_card_pricing(self, card_name: str, set_name: str = "") -> Optional[dict]:
        if not self.api_key:
            log.warning("⚠️ No PokemonPriceTracker API key available")
            return None
        search_term = f"{card_name} {set_name}" if set_name else card_name
        try:
            return await fetch_json(
                self.client, f"{POKEMONPRICETRACKER_BASE_URL}/prices",
                params={"card": search_term}, headers=self._headers(),
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error(f'❌ Error fetching pricing for "{card_name}": {e}')
            return None

    async def get_trending_cards(self) -> List[dict]:
        if not self.api_key:
            log.warning("⚠️ No PokemonPriceTracker API key available")
            return []
        try:
            data = await fetch_json(
                self.client, f"{POKEMONPRICETRACKER_BASE_URL}/trending", headers=self._headers(),
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"❌ Error fetching trending cards: {e}")
            return []
        return data if isinstance(data, list) else []
