# demo_data.py
# Fallback dataset served when no database is configured or reachable

from search import CardListing

DEMO_CARDS = [
    CardListing(
        id="charizard-base-4",
        name="Charizard",
        set_name="Base Set",
        set_id="base-set",
        number="4",
        rarity="rare-holo",
        card_type="pokemon",
        ungraded_price=150,
        psa10_price=5000,
        psa9_price=800,
        psa8_price=400,
        psa7_price=200,
        roi=3133.3,
        trending=95,
        release_date="1999-10-20",
        artist="Mitsuhiro Arita",
    ),
    CardListing(
        id="blastoise-base-2",
        name="Blastoise",
        set_name="Base Set",
        set_id="base-set",
        number="2",
        rarity="rare-holo",
        card_type="pokemon",
        ungraded_price=80,
        psa10_price=800,
        psa9_price=200,
        psa8_price=120,
        psa7_price=80,
        roi=900,
        trending=85,
        release_date="1999-10-20",
        artist="Mitsuhiro Arita",
    ),
    CardListing(
        id="venusaur-base-15",
        name="Venusaur",
        set_name="Base Set",
        set_id="base-set",
        number="15",
        rarity="rare-holo",
        card_type="pokemon",
        ungraded_price=60,
        psa10_price=600,
        psa9_price=150,
        psa8_price=90,
        psa7_price=60,
        roi=900,
        trending=75,
        release_date="1999-10-20",
        artist="Mitsuhiro Arita",
    ),
    CardListing(
        id="pikachu-base-58",
        name="Pikachu",
        set_name="Base Set",
        set_id="base-set",
        number="58",
        rarity="common",
        card_type="pokemon",
        ungraded_price=5,
        psa10_price=50,
        psa9_price=15,
        psa8_price=8,
        psa7_price=4,
        roi=900,
        trending=60,
        release_date="1999-10-20",
        artist="Atsuko Nishida",
    ),
]

DEMO_SETS = [
    {"id": "base-set", "name": "Base Set", "roi": 1250, "total": 102},
    {"id": "jungle", "name": "Jungle", "roi": 800, "total": 64},
    {"id": "fossil", "name": "Fossil", "roi": 650, "total": 62},
]

DEMO_STATS = {
    "total_cards": 1247,
    "avg_roi": 425.7,
    "avg_profit": 89.50,
    "total_market_value": 2847392,
}
