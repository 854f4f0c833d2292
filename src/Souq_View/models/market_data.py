"""Market data models: canonical snapshot items, snapshot results, and candles.

Display fields of ``MarketItem`` are pre-formatted strings so that consumers
never branch on type. Everything is frozen because a snapshot is a
point-in-time read that is replaced wholesale on the next fetch cycle.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from Souq_View.models.enums import SnapshotProvenance

PLACEHOLDER: str = "—"
"""Display value used when a symbol or price cannot be recovered."""

ZERO_PERCENT: str = "0.00"


class MarketItem(BaseModel):
    """A canonical, display-safe watchlist row for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    last_price: str
    percent_change: str = ZERO_PERCENT
    last_close: float | None = None
    image: str | None = None
    summary: dict[str, Any] | None = None


class SnapshotResult(BaseModel):
    """Outcome of one snapshot fetch, with provenance flags.

    Exactly one provenance holds at a time. ``error_502`` is only valid on a
    fallback result that carries no items.
    """

    model_config = ConfigDict(frozen=True)

    items: list[MarketItem]
    from_fallback: bool = False
    error_502: bool = False
    from_stale_cache: bool = False

    @model_validator(mode="after")
    def _check_provenance(self) -> "SnapshotResult":
        if self.from_fallback and self.from_stale_cache:
            msg = "A snapshot cannot be both a fallback and stale-cache data"
            raise ValueError(msg)
        if self.error_502 and not (self.from_fallback and not self.items):
            msg = "error_502 requires an empty fallback result"
            raise ValueError(msg)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def provenance(self) -> SnapshotProvenance:
        """Single provenance label derived from the flags."""
        if self.from_fallback:
            return SnapshotProvenance.FALLBACK
        if self.from_stale_cache:
            return SnapshotProvenance.STALE_CACHE
        return SnapshotProvenance.FRESH


class HistoricalCandle(BaseModel):
    """One chart candle. ``time`` is epoch seconds (0 when unknown)."""

    model_config = ConfigDict(frozen=True)

    time: float
    datetime: str | None = None
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None


class StockDetails(BaseModel):
    """Combined payload for the stock detail screen.

    ``detail`` and ``quote`` are opaque backend objects; only ``profile`` and
    ``historical`` are narrowed.
    """

    model_config = ConfigDict(frozen=True)

    detail: dict[str, Any] | None = None
    quote: dict[str, Any] | None = None
    profile: dict[str, Any] | None = None
    historical: list[HistoricalCandle] = Field(default_factory=list)


class OverviewInsight(BaseModel):
    """Three-line AI summary for the overview tab."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    what_is_happening: str | None = Field(default=None, alias="whatIsHappening")
    why_moving: str | None = Field(default=None, alias="whyMoving")
    whats_next: str | None = Field(default=None, alias="whatsNext")
