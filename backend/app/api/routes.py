"""REST API routes.

The engine is the in-memory source of truth for what is being watched;
the repositories hold the rows the front end reads. Writes go to both.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from app.models import (
    Alert,
    AlertCondition,
    AlertKind,
    AlertPriority,
    Signal,
    SignalAlreadyResolvedError,
    SignalType,
    normalize_symbol,
)
from app.services import MarketEngine
from app.storage import AlertRepository, NotificationRepository, SignalRepository, price_cache

logger = logging.getLogger(__name__)

router = APIRouter()


# Request models
class SignalCreate(BaseModel):
    """New pending signal."""

    id: Optional[str] = None
    symbol: str = Field(min_length=1)
    type: SignalType
    entry_price: float = Field(gt=0)


class AlertCreate(BaseModel):
    """New or replaced alert definition."""

    id: Optional[str] = None
    symbol: str = Field(min_length=1)
    kind: AlertKind = AlertKind.PRICE
    condition: AlertCondition
    threshold: float
    active: bool = True
    priority: AlertPriority = AlertPriority.MEDIUM


class AlertUpdate(BaseModel):
    active: bool


# Response models
class SignalResponse(BaseModel):
    """Signal response model."""

    id: str
    symbol: str
    type: str
    entry_price: float
    created_at: datetime
    result: str
    profit_percent: Optional[float] = None
    updated_at: Optional[datetime] = None
    tracked: bool = False


class AlertResponse(BaseModel):
    """Alert response model."""

    id: str
    symbol: str
    kind: str
    condition: str
    threshold: float
    active: bool
    priority: str
    created_at: datetime
    state: str
    fired_at: Optional[datetime] = None


class PriceResponse(BaseModel):
    """Latest price and rolling history for a symbol."""

    symbol: str
    latest: Optional[float] = None
    history: list[float]
    cached: Optional[dict] = None


class SystemStatus(BaseModel):
    """System status response."""

    status: str
    version: str
    feed_connected: bool
    symbols: list[str]
    tracked_signals: int
    tracked_alerts: int
    engine: dict


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    priority: str
    signal_id: Optional[str] = None
    alert_id: Optional[str] = None
    data: Optional[dict] = None
    read: bool
    created_at: datetime


# Dependencies
def get_engine(request: Request) -> MarketEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not running")
    return engine


def get_signal_repo() -> SignalRepository:
    return SignalRepository()


def get_alert_repo() -> AlertRepository:
    return AlertRepository()


def get_notification_repo() -> NotificationRepository:
    return NotificationRepository()


def _signal_response(signal: Signal, tracked: bool) -> SignalResponse:
    return SignalResponse(
        id=signal.id,
        symbol=signal.symbol,
        type=signal.type.value,
        entry_price=signal.entry_price,
        created_at=signal.created_at,
        result=signal.result.value,
        profit_percent=signal.profit_percent,
        updated_at=signal.updated_at,
        tracked=tracked,
    )


def _alert_response(alert: Alert) -> AlertResponse:
    return AlertResponse(
        id=alert.id,
        symbol=alert.symbol,
        kind=alert.kind.value,
        condition=alert.condition.value,
        threshold=alert.threshold,
        active=alert.active,
        priority=alert.priority.value,
        created_at=alert.created_at,
        state=alert.state.value,
        fired_at=alert.fired_at,
    )


@router.get("/status", response_model=SystemStatus)
async def get_status(engine: MarketEngine = Depends(get_engine)):
    """Get engine status."""
    return SystemStatus(
        status="running" if engine.is_running else "stopped",
        version="0.1.0",
        feed_connected=engine.feed.is_connected,
        symbols=sorted(engine.feed.symbols),
        tracked_signals=engine.state.signal_count,
        tracked_alerts=engine.state.alert_count,
        engine=engine.stats,
    )


# ---------- Signals ----------

@router.get("/signals", response_model=list[SignalResponse])
async def get_signals(
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum signals to return"),
    tracked: bool = Query(False, description="Only signals the engine is tracking"),
    engine: MarketEngine = Depends(get_engine),
    repo: SignalRepository = Depends(get_signal_repo),
):
    """Get recent signals, or the pending signals being tracked."""
    wanted = normalize_symbol(symbol) if symbol else None

    if tracked:
        signals = [
            s for s in engine.state.tracked_signals()
            if wanted is None or s.symbol == wanted
        ]
    else:
        signals = await repo.get_recent(limit=limit, symbol=wanted)

    return [
        _signal_response(s, engine.state.get_signal(s.id) is not None)
        for s in signals[:limit]
    ]


@router.get("/signals/stats")
async def get_signal_stats(
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    repo: SignalRepository = Depends(get_signal_repo),
):
    """Get success/failure counts."""
    return await repo.get_stats(symbol=normalize_symbol(symbol) if symbol else None)


@router.post("/signals", response_model=SignalResponse, status_code=201)
async def create_signal(
    body: SignalCreate,
    engine: MarketEngine = Depends(get_engine),
    repo: SignalRepository = Depends(get_signal_repo),
):
    """Store a new pending signal and start tracking it.

    Ids are never reused; a stored signal is re-tracked with
    ``POST /signals/{id}/track`` instead.
    """
    if body.id:
        existing = await repo.get_by_id(body.id)
        if existing is not None:
            raise HTTPException(
                status_code=409,
                detail=f"Signal {body.id} already exists ({existing.result.value})",
            )

    signal = Signal(
        id=body.id or str(uuid.uuid4()),
        symbol=body.symbol,
        type=body.type,
        entry_price=body.entry_price,
    )
    if not await repo.save(signal):
        raise HTTPException(status_code=409, detail=f"Signal {signal.id} already exists")
    engine.track_signal(signal)
    return _signal_response(signal, True)


@router.post("/signals/validate", response_model=list[SignalResponse])
async def validate_signals(engine: MarketEngine = Depends(get_engine)):
    """Run one validation cycle now and return the signals it resolved."""
    resolved = []
    for event in engine.run_validation_now():
        resolved.append(SignalResponse(
            id=event.signal_id,
            symbol=event.symbol,
            type=event.signal_type.value,
            entry_price=event.entry_price,
            created_at=event.resolved_at,
            result=event.result.value,
            profit_percent=event.profit_percent,
            updated_at=event.resolved_at,
        ))
    return resolved


@router.post("/signals/{signal_id}/track", response_model=SignalResponse)
async def track_signal(
    signal_id: str,
    engine: MarketEngine = Depends(get_engine),
    repo: SignalRepository = Depends(get_signal_repo),
):
    """Start tracking a stored signal."""
    signal = await repo.get_by_id(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")

    try:
        engine.track_signal(signal)
    except SignalAlreadyResolvedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return _signal_response(signal, True)


@router.delete("/signals/{signal_id}", response_model=SignalResponse)
async def untrack_signal(signal_id: str, engine: MarketEngine = Depends(get_engine)):
    """Stop tracking a signal. The stored row is kept."""
    signal = engine.untrack_signal(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not tracked")
    return _signal_response(signal, False)


# ---------- Alerts ----------

@router.get("/alerts", response_model=list[AlertResponse])
async def get_alerts(
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    engine: MarketEngine = Depends(get_engine),
):
    """Get tracked alerts with their fired state."""
    if symbol:
        alerts = engine.state.alerts_for(normalize_symbol(symbol))
    else:
        alerts = engine.state.alerts()
    return [_alert_response(a) for a in alerts]


@router.post("/alerts", response_model=AlertResponse, status_code=201)
async def create_alert(
    body: AlertCreate,
    engine: MarketEngine = Depends(get_engine),
    repo: AlertRepository = Depends(get_alert_repo),
):
    """Store an alert definition and start tracking it."""
    alert = Alert(
        id=body.id or str(uuid.uuid4()),
        symbol=body.symbol,
        kind=body.kind,
        condition=body.condition,
        threshold=body.threshold,
        active=body.active,
        priority=body.priority,
    )
    await repo.save(alert)
    return _alert_response(engine.track_alert(alert))


@router.patch("/alerts/{alert_id}", response_model=AlertResponse)
async def update_alert(
    alert_id: str,
    body: AlertUpdate,
    engine: MarketEngine = Depends(get_engine),
    repo: AlertRepository = Depends(get_alert_repo),
):
    """Toggle an alert. Turning it back on re-arms it."""
    alert = engine.set_alert_active(alert_id, body.active)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")

    await repo.set_active(alert_id, body.active)
    return _alert_response(alert)


@router.delete("/alerts/{alert_id}")
async def delete_alert(
    alert_id: str,
    engine: MarketEngine = Depends(get_engine),
    repo: AlertRepository = Depends(get_alert_repo),
):
    """Stop tracking an alert and delete its row."""
    untracked = engine.untrack_alert(alert_id) is not None
    deleted = await repo.delete(alert_id)
    if not untracked and not deleted:
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"id": alert_id, "deleted": deleted}


# ---------- Prices ----------

@router.get("/prices")
async def get_prices(engine: MarketEngine = Depends(get_engine)):
    """Get the latest price of every streamed symbol.

    Prices come from Redis when it is available, otherwise from memory.
    """
    symbols = sorted(engine.feed.symbols)
    cached = await price_cache.get_prices(symbols)
    return {
        symbol: cached.get(symbol) or price_cache.get_price_immediate(symbol)
        for symbol in symbols
    }


@router.get("/prices/{symbol}", response_model=PriceResponse)
async def get_price(symbol: str, engine: MarketEngine = Depends(get_engine)):
    """Get the latest price and rolling history for a symbol."""
    key = normalize_symbol(symbol)
    history = engine.state.history.window(key)
    cached = price_cache.get_price_immediate(key) or await price_cache.get_price(key)

    if not history and cached is None:
        raise HTTPException(status_code=404, detail=f"No price data for {key}")

    return PriceResponse(
        symbol=key,
        latest=history[-1] if history else None,
        history=list(history),
        cached=cached,
    )


# ---------- Notifications ----------

@router.get("/notifications", response_model=list[NotificationResponse])
async def get_notifications(
    limit: int = Query(50, ge=1, le=500),
    unread_only: bool = Query(False),
    repo: NotificationRepository = Depends(get_notification_repo),
):
    """Get recent notifications, newest first."""
    rows = await repo.get_recent(limit=limit, unread_only=unread_only)
    return [NotificationResponse(**row) for row in rows]


@router.post("/notifications/read-all")
async def mark_all_notifications_read(
    repo: NotificationRepository = Depends(get_notification_repo),
):
    """Mark every notification as read."""
    return {"updated": await repo.mark_all_read()}


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    repo: NotificationRepository = Depends(get_notification_repo),
):
    """Mark one notification as read."""
    if not await repo.mark_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"id": notification_id, "read": True}
