# search.py
# In-memory card search: text match, categorical filters, price/ROI ranges, sort

import math
from dataclasses import dataclass, asdict
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class CardListing:
    id: str
    name: str
    set_name: str = ""
    set_id: Optional[str] = None
    number: str = ""
    rarity: Optional[str] = None
    card_type: Optional[str] = None
    ungraded_price: float = 0.0
    psa10_price: float = 0.0
    psa9_price: float = 0.0
    psa8_price: float = 0.0
    psa7_price: float = 0.0
    roi: float = 0.0
    trending: float = 0.0
    release_date: Optional[str] = None
    artist: Optional[str] = None
    image: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CardFilters:
    set_id: Optional[str] = None
    card_type: Optional[str] = None
    rarity: Optional[str] = None
    price_min: float = 0.0
    price_max: float = math.inf
    roi_min: float = 0.0
    roi_max: float = math.inf
    sort_by: Optional[str] = None


def _matches_term(card: CardListing, term: str) -> bool:
    if not term:
        return True
    return (
        term in (card.name or "").lower()
        or term in (card.set_name or "").lower()
        or term in (card.number or "").lower()
    )


def matches(card: CardListing, term: str, filters: CardFilters) -> bool:
    if not _matches_term(card, term):
        return False
    if filters.set_id and card.set_id != filters.set_id:
        return False
    if filters.card_type and card.card_type != filters.card_type:
        return False
    if filters.rarity and card.rarity != filters.rarity:
        return False
    if not filters.price_min <= card.ungraded_price <= filters.price_max:
        return False
    if not filters.roi_min <= card.roi <= filters.roi_max:
        return False
    return True


# sort key -> (key function, descending)
SORT_KEYS = {
    "price-desc": (lambda c: c.ungraded_price, True),
    "price-asc": (lambda c: c.ungraded_price, False),
    "roi-desc": (lambda c: c.roi, True),
    "roi-asc": (lambda c: c.roi, False),
    "name": (lambda c: (c.name.lower(), c.name), False),
    "trending": (lambda c: c.trending, True),
}


def sort_cards(cards: Iterable[CardListing], sort_by: Optional[str]) -> List[CardListing]:
    cards = list(cards)
    if sort_by not in SORT_KEYS:
        return cards
    key, descending = SORT_KEYS[sort_by]
    return sorted(cards, key=key, reverse=descending)


def query(cards: Iterable[CardListing], search_term: str = "", filters: Optional[CardFilters] = None) -> List[CardListing]:
    filters = filters or CardFilters()
    term = (search_term or "").strip().lower()
    results = [card for card in cards if matches(card, term, filters)]
    return sort_cards(results, filters.sort_by)
