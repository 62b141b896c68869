from fastapi import FastAPI, Query, HTTPException, Depends, Header, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from dataclasses import asdict
from datetime import date
from typing import Dict, List, Optional, Tuple
from dotenv import load_dotenv
import os
import math
import httpx

# Load .env before modules read their settings
load_dotenv()

import db
from case_cracker import calculate_product_ev
from demo_data import DEMO_CARDS, DEMO_SETS, DEMO_STATS
from logger import get_logger
from models import Card, CardSet, PricingData, PortfolioEntry, WatchlistEntry, UserPreferences, UserApiKey, utc_now
from pricing_sources import API_TIMEOUT
from search import CardFilters, CardListing, query as search_query
from sync_service import ApiKeyStore, DataSyncService, MissingApiKey, SERVICE_ENV_KEYS
from utils import build_csv, format_grading_status, format_us_date
from valuation import (
    AlertType, GradingStatus, PriceTiers, alert_triggered, compute_return, current_price,
    grading_costs, grading_profit, market_stats, portfolio_totals,
)

log = get_logger("api")

# === App Setup ===
app = FastAPI(
    title="TCG Investor API",
    description="Pokemon card search, portfolio ROI tracking, watchlist and pricing sync",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Database Setup ===
db.configure(os.getenv("DATABASE_URL"))


@app.on_event("startup")
async def on_startup():
    await db.init_models()


async def get_db_session():
    if not db.is_configured():
        raise HTTPException(status_code=503, detail="Database not configured (demo mode)")
    async with db.get_session() as session:
        yield session


async def get_optional_session():
    if not db.is_configured():
        yield None
        return
    async with db.get_session() as session:
        yield session


async def get_http_client():
    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        yield client


async def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Please sign in to manage your portfolio")
    return x_user_id


# === Input Schemas ===
class PortfolioCreate(BaseModel):
    card_id: str = Field(..., min_length=1)
    purchase_price: float = Field(..., gt=0)
    purchase_date: date = Field(default_factory=date.today)
    grading_status: GradingStatus = GradingStatus.UNGRADED
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = ""


class PortfolioUpdate(BaseModel):
    purchase_price: Optional[float] = Field(None, gt=0)
    purchase_date: Optional[date] = None
    grading_status: Optional[GradingStatus] = None
    quantity: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None


class WatchlistCreate(BaseModel):
    card_id: str = Field(..., min_length=1)
    alert_price: Optional[float] = Field(None, gt=0)
    alert_type: AlertType = AlertType.ABOVE


class PreferencesUpdate(BaseModel):
    currency: Optional[str] = None
    grading_preference: Optional[str] = None
    notification_email: Optional[bool] = None


class ApiKeyUpdate(BaseModel):
    api_key: str = Field(..., min_length=1)
    is_active: bool = True


class EVRequest(BaseModel):
    product: str = ""
    purchase_price: float = 0


# === Helpers ===
async def latest_pricing(session, card_ids: Optional[List[str]] = None) -> Dict[str, PricingData]:
    stmt = select(PricingData).order_by(PricingData.last_updated.desc())
    if card_ids is not None:
        stmt = stmt.where(PricingData.card_id.in_(card_ids))
    rows = (await session.execute(stmt)).scalars().all()
    latest: Dict[str, PricingData] = {}
    for row in rows:
        latest.setdefault(row.card_id, row)
    return latest


def to_listing(card: Card, pricing: Optional[PricingData]) -> CardListing:
    p = pricing
    return CardListing(
        id=card.id,
        name=card.name,
        set_name=card.set_name or "",
        set_id=card.set_id,
        number=card.number or "",
        rarity=card.rarity,
        card_type=card.card_type,
        ungraded_price=float(p.ungraded_price or 0) if p else 0.0,
        psa10_price=float(p.psa_10_price or 0) if p else 0.0,
        psa9_price=float(p.psa_9_price or 0) if p else 0.0,
        psa8_price=float(p.psa_8_price or 0) if p else 0.0,
        psa7_price=float(p.psa_7_price or 0) if p else 0.0,
        roi=float(p.roi_percentage or 0) if p else 0.0,
        trending=float(p.trending_score or 0) if p else 0.0,
        release_date=card.release_date,
        artist=card.artist,
        image=card.image_url,
    )


async def load_listings(session) -> Tuple[List[CardListing], bool]:
    """Cards with their latest pricing, or the demo dataset when the database is unavailable."""
    if session is None:
        return DEMO_CARDS, True
    try:
        cards = (await session.execute(select(Card))).scalars().all()
        pricing = await latest_pricing(session)
    except SQLAlchemyError as e:
        log.error(f"❌ Error loading cards from database, using demo data: {e}")
        return DEMO_CARDS, True
    return [to_listing(c, pricing.get(c.id)) for c in cards], False


def card_summary(card: Optional[Card]) -> Optional[dict]:
    if card is None:
        return None
    return {
        "id": card.id,
        "name": card.name,
        "set_name": card.set_name,
        "number": card.number,
        "image_url": card.image_url,
    }


async def get_card_or_404(session, card_id: str) -> Card:
    card = await session.get(Card, card_id)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


async def portfolio_rows(session, user_id: str) -> List[dict]:
    result = await session.execute(
        select(PortfolioEntry, Card)
        .join(Card, Card.id == PortfolioEntry.card_id, isouter=True)
        .where(PortfolioEntry.user_id == user_id)
        .order_by(PortfolioEntry.created_at.desc())
    )
    pairs = result.all()
    pricing = await latest_pricing(session, [entry.card_id for entry, _ in pairs])

    rows = []
    for entry, card in pairs:
        record = pricing.get(entry.card_id)
        tiers = PriceTiers.from_record(record) if record else None
        price = current_price(entry.purchase_price, tiers, entry.grading_status)
        ret = compute_return(entry.purchase_price, price, entry.quantity)
        rows.append({
            **entry.model_dump(),
            "card": card_summary(card),
            "current_price": price,
            "profit": ret.profit,
            "roi_percent": ret.roi_percent,
        })
    return rows


async def get_entry_or_404(session, user_id: str, entry_id: int) -> PortfolioEntry:
    result = await session.execute(
        select(PortfolioEntry).where(PortfolioEntry.id == entry_id, PortfolioEntry.user_id == user_id)
    )
    entry = result.scalars().first()
    if entry is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return entry


# === API Routes ===
@app.get("/")
def health():
    return {"message": "TCG Investor API is live", "demo_mode": not db.is_configured()}


@app.get("/stats")
async def stats(session=Depends(get_optional_session)):
    if session is None:
        return DEMO_STATS
    total = (await session.execute(select(func.count()).select_from(Card))).scalar_one()
    pricing = await latest_pricing(session)
    return market_stats(list(pricing.values()), total)


@app.get("/sets")
async def list_sets(session=Depends(get_optional_session)):
    if session is None:
        return DEMO_SETS
    result = await session.execute(select(CardSet).order_by(CardSet.release_date.desc()))
    return result.scalars().all()


@app.get("/cards/search")
async def search_cards(
    q: str = "",
    set_id: Optional[str] = Query(None, alias="set"),
    card_type: Optional[str] = Query(None, alias="type"),
    rarity: Optional[str] = None,
    price_min: float = 0,
    price_max: Optional[float] = None,
    roi_min: float = 0,
    roi_max: Optional[float] = None,
    sort_by: Optional[str] = None,
    limit: int = Query(50, ge=1, le=250),
    session=Depends(get_optional_session),
):
    filters = CardFilters(
        set_id=set_id or None,
        card_type=card_type or None,
        rarity=rarity or None,
        price_min=price_min,
        price_max=price_max if price_max is not None else math.inf,
        roi_min=roi_min,
        roi_max=roi_max if roi_max is not None else math.inf,
        sort_by=sort_by,
    )
    cards, demo = await load_listings(session)
    results = search_query(cards, q, filters)[:limit]
    return {"demo": demo, "count": len(results), "results": [c.to_dict() for c in results]}


@app.get("/cards/{card_id}")
async def card_detail(card_id: str, session=Depends(get_optional_session)):
    if session is None:
        listing = next((c for c in DEMO_CARDS if c.id == card_id), None)
        if listing is None:
            raise HTTPException(status_code=404, detail="Card not found")
    else:
        card = await get_card_or_404(session, card_id)
        pricing = await latest_pricing(session, [card_id])
        listing = to_listing(card, pricing.get(card_id))

    return {
        "card": listing.to_dict(),
        "grading_costs": grading_costs(listing.psa10_price),
        "net_profit": grading_profit(listing.ungraded_price, listing.psa10_price),
        "roi": listing.roi,
    }


# === Portfolio ===
@app.get("/portfolio")
async def get_portfolio(user_id: str = Depends(current_user_id), session=Depends(get_db_session)):
    rows = await portfolio_rows(session, user_id)
    totals = portfolio_totals((r["purchase_price"], r["current_price"], r["quantity"]) for r in rows)
    return {"items": rows, "totals": asdict(totals)}


@app.post("/portfolio", status_code=201)
async def add_to_portfolio(
    payload: PortfolioCreate,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    await get_card_or_404(session, payload.card_id)
    existing = await session.execute(
        select(PortfolioEntry).where(PortfolioEntry.user_id == user_id, PortfolioEntry.card_id == payload.card_id)
    )
    if existing.scalars().first() is not None:
        raise HTTPException(status_code=409, detail="Card already in portfolio")

    entry = PortfolioEntry(
        user_id=user_id,
        card_id=payload.card_id,
        purchase_price=payload.purchase_price,
        purchase_date=payload.purchase_date,
        grading_status=payload.grading_status.value,
        quantity=payload.quantity,
        notes=payload.notes or "",
    )
    session.add(entry)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=409, detail="Card already in portfolio")
    await session.refresh(entry)
    log.info(f"✅ Added {payload.card_id} to portfolio of {user_id}")
    return entry


@app.get("/portfolio/export")
async def export_portfolio(user_id: str = Depends(current_user_id), session=Depends(get_db_session)):
    rows = await portfolio_rows(session, user_id)
    if not rows:
        raise HTTPException(status_code=400, detail="No portfolio items to export")

    csv_rows = []
    for r in rows:
        card = r["card"] or {}
        csv_rows.append([
            card.get("name") or "Unknown",
            card.get("set_name") or "",
            card.get("number") or "",
            r["purchase_price"],
            r["current_price"],
            f"{r['roi_percent']:.1f}%",
            r["profit"],
            format_grading_status(r["grading_status"]),
            format_us_date(r["purchase_date"]),
            r["notes"] or "",
        ])

    filename = f"portfolio-{date.today().isoformat()}.csv"
    return Response(
        content=build_csv(csv_rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/portfolio/import")
async def import_portfolio(user_id: str = Depends(current_user_id)):
    raise HTTPException(status_code=501, detail="CSV import feature coming soon!")


@app.put("/portfolio/{entry_id}")
async def update_portfolio_item(
    entry_id: int,
    payload: PortfolioUpdate,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    update = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not update:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    if "grading_status" in update:
        update["grading_status"] = update["grading_status"].value

    entry = await get_entry_or_404(session, user_id, entry_id)
    for key, value in update.items():
        setattr(entry, key, value)
    entry.updated_at = utc_now()
    await session.commit()
    await session.refresh(entry)
    return entry


@app.delete("/portfolio/{entry_id}")
async def delete_portfolio_item(
    entry_id: int,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    entry = await get_entry_or_404(session, user_id, entry_id)
    await session.delete(entry)
    await session.commit()
    return {"ok": True}


# === Watchlist ===
@app.get("/watchlist")
async def get_watchlist(user_id: str = Depends(current_user_id), session=Depends(get_db_session)):
    result = await session.execute(
        select(WatchlistEntry, Card)
        .join(Card, Card.id == WatchlistEntry.card_id, isouter=True)
        .where(WatchlistEntry.user_id == user_id)
        .order_by(WatchlistEntry.created_at.desc())
    )
    pairs = result.all()
    pricing = await latest_pricing(session, [entry.card_id for entry, _ in pairs])

    items = []
    for entry, card in pairs:
        record = pricing.get(entry.card_id)
        ungraded = float(record.ungraded_price) if record and record.ungraded_price is not None else None
        items.append({
            **entry.model_dump(),
            "card": card_summary(card),
            "ungraded_price": ungraded,
            "psa_10_price": record.psa_10_price if record else None,
            "alert_triggered": entry.is_active and alert_triggered(ungraded, entry.alert_price, entry.alert_type),
        })
    return items


@app.post("/watchlist", status_code=201)
async def add_to_watchlist(
    payload: WatchlistCreate,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    await get_card_or_404(session, payload.card_id)

    # (user_id, card_id) is unique; a duplicate fails on commit
    entry = WatchlistEntry(
        user_id=user_id,
        card_id=payload.card_id,
        alert_price=payload.alert_price,
        alert_type=payload.alert_type.value,
    )
    session.add(entry)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=409, detail="Card already in watchlist")
    await session.refresh(entry)
    return entry


@app.delete("/watchlist/{card_id}")
async def remove_from_watchlist(
    card_id: str,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    result = await session.execute(
        select(WatchlistEntry).where(WatchlistEntry.user_id == user_id, WatchlistEntry.card_id == card_id)
    )
    entry = result.scalars().first()
    if entry is None:
        raise HTTPException(status_code=404, detail="Item not found")
    await session.delete(entry)
    await session.commit()
    return {"ok": True}


# === Preferences & API keys ===
@app.get("/preferences")
async def get_preferences(user_id: str = Depends(current_user_id), session=Depends(get_db_session)):
    result = await session.execute(select(UserPreferences).where(UserPreferences.user_id == user_id))
    prefs = result.scalars().first()
    return prefs or UserPreferences(user_id=user_id)


@app.put("/preferences")
async def update_preferences(
    payload: PreferencesUpdate,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    result = await session.execute(select(UserPreferences).where(UserPreferences.user_id == user_id))
    prefs = result.scalars().first()
    if prefs is None:
        prefs = UserPreferences(user_id=user_id)
        session.add(prefs)
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(prefs, key, value)
    prefs.updated_at = utc_now()
    await session.commit()
    await session.refresh(prefs)
    return prefs


@app.get("/api-keys")
async def list_api_keys(user_id: str = Depends(current_user_id), session=Depends(get_db_session)):
    result = await session.execute(select(UserApiKey).where(UserApiKey.user_id == user_id))
    return [
        {"service": k.service, "is_active": k.is_active, "api_key": f"{k.api_key[:4]}..."}
        for k in result.scalars().all()
    ]


@app.put("/api-keys/{service}")
async def set_api_key(
    service: str,
    payload: ApiKeyUpdate,
    user_id: str = Depends(current_user_id),
    session=Depends(get_db_session),
):
    if service not in SERVICE_ENV_KEYS:
        raise HTTPException(status_code=400, detail=f"Unknown service: {service}")

    result = await session.execute(
        select(UserApiKey).where(UserApiKey.user_id == user_id, UserApiKey.service == service)
    )
    key = result.scalars().first()
    if key is None:
        key = UserApiKey(user_id=user_id, service=service, api_key=payload.api_key)
        session.add(key)
    key.api_key = payload.api_key
    key.is_active = payload.is_active
    key.updated_at = utc_now()
    await session.commit()
    return {"service": service, "is_active": key.is_active}


# === Case cracker ===
@app.post("/case-cracker/ev")
def case_cracker_ev(payload: EVRequest):
    try:
        result = calculate_product_ev(payload.product, payload.purchase_price)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown product: {payload.product}")
    return result.to_dict()


# === Sync jobs ===
def _sync_service(session, user_id, http) -> DataSyncService:
    return DataSyncService(session, ApiKeyStore(session, user_id), http)


def _not_configured() -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": "Database not configured"})


async def _run_job(job, action: str):
    """Await a sync job, answering {error} instead of raising."""
    try:
        return await job
    except MissingApiKey as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        log.error(f"❌ Error {action}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.post("/sync/populate-cards")
async def populate_cards(
    x_user_id: Optional[str] = Header(None),
    session=Depends(get_optional_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if session is None:
        return _not_configured()
    return await _run_job(_sync_service(session, x_user_id, http).populate_cards(), "populating database")


@app.post("/sync/populate-pricing")
async def populate_pricing(
    x_user_id: Optional[str] = Header(None),
    session=Depends(get_optional_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if session is None:
        return _not_configured()
    return await _run_job(_sync_service(session, x_user_id, http).populate_pricing(), "populating pricing data")


async def _counted(job) -> dict:
    return {"success": True, "count": await job}


@app.post("/sync/sets")
async def sync_sets(
    x_user_id: Optional[str] = Header(None),
    session=Depends(get_optional_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if session is None:
        return _not_configured()
    return await _run_job(_counted(_sync_service(session, x_user_id, http).sync_sets()), "syncing sets")


@app.post("/sync/sets/{set_id}/cards")
async def sync_cards_for_set(
    set_id: str,
    limit: int = Query(100, ge=1, le=250),
    x_user_id: Optional[str] = Header(None),
    session=Depends(get_optional_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if session is None:
        return _not_configured()
    job = _sync_service(session, x_user_id, http).sync_cards_for_set(set_id, limit)
    return await _run_job(_counted(job), f"syncing cards for set {set_id}")


async def _card_pricing(service: DataSyncService, card: Card) -> dict:
    pricing = await service.sync_pricing_for_card(card.id, card.name, card.set_name or "")
    return {"success": pricing is not None, "pricing": pricing}


@app.post("/sync/pricing/{card_id}")
async def sync_card_pricing(
    card_id: str,
    x_user_id: Optional[str] = Header(None),
    session=Depends(get_optional_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if session is None:
        return _not_configured()
    card = await session.get(Card, card_id)
    if card is None:
        return JSONResponse(status_code=404, content={"error": "Card not found"})
    return await _run_job(_card_pricing(_sync_service(session, x_user_id, http), card), f"syncing pricing for {card_id}")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
