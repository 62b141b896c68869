from typing import Optional
import datetime as dt
from datetime import date, datetime, timezone
from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp():
    # Aware UTC values in a timezone-aware column
    return Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


# === Card sets from PokemonTCG.io ===
class CardSet(SQLModel, table=True):
    __tablename__ = "sets"

    id: str = Field(primary_key=True)
    name: str
    series: Optional[str] = None
    total: Optional[int] = None
    release_date: Optional[str] = None
    legal_standard: Optional[str] = "unknown"
    symbol_url: Optional[str] = None
    logo_url: Optional[str] = None
    created_at: Optional[datetime] = _timestamp()
    updated_at: Optional[datetime] = _timestamp()


# === Card reference data ===
class Card(SQLModel, table=True):
    __tablename__ = "cards"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    set_id: Optional[str] = Field(default=None, foreign_key="sets.id", index=True)
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    card_type: Optional[str] = None
    artist: Optional[str] = None
    release_date: Optional[str] = None
    image_url: Optional[str] = None
    image_url_large: Optional[str] = None
    tcgplayer_id: Optional[str] = None
    cardmarket_id: Optional[str] = None
    legal_standard: Optional[str] = "unknown"
    created_at: Optional[datetime] = _timestamp()
    updated_at: Optional[datetime] = _timestamp()


# === Latest price points per (card, source) ===
class PricingData(SQLModel, table=True):
    __tablename__ = "pricing_data"
    __table_args__ = (UniqueConstraint("card_id", "source"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    card_id: str = Field(foreign_key="cards.id", index=True)
    source: str
    data_source: Optional[str] = None
    ungraded_price: Optional[float] = None
    psa_7_price: Optional[float] = None
    psa_8_price: Optional[float] = None
    psa_9_price: Optional[float] = None
    psa_10_price: Optional[float] = None
    roi_percentage: Optional[float] = None
    trending_score: Optional[float] = None
    last_updated: Optional[datetime] = _timestamp()


# === Daily ungraded price series ===
class PriceHistory(SQLModel, table=True):
    __tablename__ = "price_history"
    __table_args__ = (UniqueConstraint("card_id", "source", "date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    card_id: str = Field(foreign_key="cards.id", index=True)
    source: str
    price: float
    date: dt.date
    created_at: Optional[datetime] = _timestamp()


# === User-owned tables (always filtered by user_id) ===
class PortfolioEntry(SQLModel, table=True):
    __tablename__ = "user_portfolios"
    __table_args__ = (UniqueConstraint("user_id", "card_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    card_id: str = Field(foreign_key="cards.id")
    purchase_price: float
    purchase_date: date
    quantity: int = 1
    grading_status: str = "ungraded"
    notes: Optional[str] = None
    created_at: Optional[datetime] = _timestamp()
    updated_at: Optional[datetime] = _timestamp()


class WatchlistEntry(SQLModel, table=True):
    __tablename__ = "user_watchlists"
    __table_args__ = (UniqueConstraint("user_id", "card_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    card_id: str = Field(foreign_key="cards.id")
    alert_price: Optional[float] = None
    alert_type: str = "above"
    is_active: bool = True
    created_at: Optional[datetime] = _timestamp()
    updated_at: Optional[datetime] = _timestamp()


class UserPreferences(SQLModel, table=True):
    __tablename__ = "user_preferences"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True)
    currency: str = "USD"
    grading_preference: str = "PSA"
    notification_email: bool = True
    created_at: Optional[datetime] = _timestamp()
    updated_at: Optional[datetime] = _timestamp()


class UserApiKey(SQLModel, table=True):
    __tablename__ = "user_api_keys"
    __table_args__ = (UniqueConstraint("user_id", "service"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    service: str
    api_key: str
    is_active: bool = True
    created_at: Optional[datetime] = _timestamp()
    updated_at: Optional[datetime] = _timestamp()
