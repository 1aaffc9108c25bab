from __future__ import annotations

import asyncio
import logging
import os
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated, Any

import pandas as pd
from fastapi import FastAPI, Header, Path, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from escrowtrader.domain.errors import (
    AlreadyInitialized,
    CommodityNotFound,
    EngineUnavailable,
    EscrowTransactionFailed,
    LedgerError,
    NotFound,
    NotInitialized,
    PositionAlreadyOpen,
    PositionNotFound,
    TradingDisabled,
    Unauthorized,
)
from escrowtrader.domain.models import MAX_AMOUNT
from escrowtrader.trading.engine import TradeEngine
from escrowtrader.utils.config_loader import load_config

logger = logging.getLogger(__name__)

_engine: TradeEngine | None = None

# Engine calls block on the database; keep them off the event loop.
# The engine serializes operations itself, so the pool size only bounds queueing.
_ledger_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="ledger")
_READ_TIMEOUT_SECONDS = 10.0

# Most specific class first; first match wins.
_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (Unauthorized, 403),
    (PositionNotFound, 404),
    (CommodityNotFound, 404),
    (NotFound, 404),
    (PositionAlreadyOpen, 409),
    (TradingDisabled, 409),
    (AlreadyInitialized, 409),
    (NotInitialized, 409),
    (EscrowTransactionFailed, 502),
    (EngineUnavailable, 503),
]


def _status_for(exc: LedgerError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 422


def _require_engine() -> TradeEngine:
    if _engine is None:
        raise EngineUnavailable("Ledger engine not ready")
    return _engine


def _df_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    if df is None or df.empty:
        return []
    # NULL columns come back as NaN, which JSON cannot carry.
    df = df.astype(object).where(pd.notna(df), None)
    return jsonable_encoder(df.to_dict(orient="records"))


def _ok(result: Any = None) -> dict[str, Any]:
    return {"ok": True, "result": jsonable_encoder(result)}


app = FastAPI(
    title="EscrowTrader API",
    version="0.1.0",
)


@app.on_event("startup")
async def startup_event():
    global _engine
    if _engine is not None:
        # Injected by the embedding process (or tests).
        return
    if str(os.environ.get("ESCROWTRADER_DISABLE_ENGINE", "")).strip() in {"1", "true", "TRUE", "yes", "YES"}:
        logger.info("Engine startup skipped (ESCROWTRADER_DISABLE_ENGINE set).")
        return

    cfg = load_config()
    _engine = TradeEngine.from_config(cfg)
    logger.info("Ledger engine started (custodian=%s)", cfg["custodian"]["principal"])


@app.on_event("shutdown")
async def shutdown_event():
    global _engine
    if _engine:
        _engine.close()
        _engine = None
        logger.info("Ledger engine stopped")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Domain failures are returned as a tagged result, never as a 500."""
    status = _status_for(exc)
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return JSONResponse(status_code=status, content={"ok": False, "error": exc.to_dict()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler to catch unhandled errors and return a clean JSON response.
    """
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}")
    logger.debug(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "legacy_code": "INTERNAL_ERROR",
                "message": f"Internal server error: {type(exc).__name__}",
            },
        },
    )


async def _run_in_executor(func, *args, timeout_seconds: float | None = None, **kwargs):
    """
    Run a read-only engine call in the thread pool. Ledger errors propagate to the
    exception handlers; a timeout becomes a 503.
    """
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(_ledger_executor, lambda: func(*args, **kwargs)),
            timeout=timeout_seconds or _READ_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as e:
        raise EngineUnavailable(f"Ledger call timed out: {func.__name__}") from e


async def _run_mutation(func, *args, **kwargs):
    """
    Run a mutating engine call in the thread pool and wait for its outcome.

    The worker thread cannot be cancelled, so the response must report what the
    ledger actually did; there is no timeout here.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_ledger_executor, lambda: func(*args, **kwargs))


# ----- Request bodies -----

UInt = Annotated[int, Field(ge=0, le=MAX_AMOUNT)]
PathId = Annotated[int, Path(ge=0, le=MAX_AMOUNT)]


class InitializeRequest(BaseModel):
    administrator: str = Field(..., min_length=1)


class OracleRequest(BaseModel):
    address: str = Field(..., min_length=1)


class MinTradeQuantityRequest(BaseModel):
    min_trade_quantity: UInt


class RegisterCommodityRequest(BaseModel):
    commodity_id: UInt
    quantity: UInt
    price: UInt


class AmountRequest(BaseModel):
    amount: UInt


class ExecuteTradeRequest(BaseModel):
    commodity_id: UInt
    quantity: UInt
    position_id: UInt


# ----- Routes -----


@app.get("/api/health")
async def health() -> dict[str, Any]:
    engine = _engine
    initialized = False
    if engine is not None:
        initialized = await _run_in_executor(engine.is_initialized)
    return {
        "status": "ok" if engine is not None else "degraded",
        "engine_ready": engine is not None,
        "market_initialized": initialized,
    }


@app.post("/api/initialize")
async def initialize(body: InitializeRequest) -> dict[str, Any]:
    engine = _require_engine()
    state = await _run_mutation(engine.initialize, body.administrator)
    return _ok(state.to_dict())


@app.get("/api/market")
async def market_state() -> dict[str, Any]:
    engine = _require_engine()
    state = await _run_in_executor(engine.get_market_state)
    return _ok(state.to_dict())


@app.post("/api/market/oracle")
async def update_price_oracle(body: OracleRequest, x_principal: str = Header(..., min_length=1)) -> dict[str, Any]:
    engine = _require_engine()
    await _run_mutation(engine.update_price_oracle, x_principal, body.address)
    return _ok()


@app.post("/api/market/toggle")
async def toggle_trading(x_principal: str = Header(..., min_length=1)) -> dict[str, Any]:
    engine = _require_engine()
    enabled = await _run_mutation(engine.toggle_trading, x_principal)
    return _ok({"trading_enabled": enabled})


@app.post("/api/market/min-trade-quantity")
async def set_min_trade_quantity(
    body: MinTradeQuantityRequest, x_principal: str = Header(..., min_length=1)
) -> dict[str, Any]:
    engine = _require_engine()
    await _run_mutation(engine.set_min_trade_quantity, x_principal, body.min_trade_quantity)
    return _ok()


@app.post("/api/commodities")
async def register_commodity(
    body: RegisterCommodityRequest, x_principal: str = Header(..., min_length=1)
) -> dict[str, Any]:
    engine = _require_engine()
    commodity = await _run_mutation(
        engine.register_commodity, x_principal, body.commodity_id, body.quantity, body.price
    )
    return _ok(commodity.to_dict())


@app.get("/api/commodities")
async def list_commodities() -> dict[str, Any]:
    engine = _require_engine()
    rows = await _run_in_executor(engine.list_commodities)
    return _ok([c.to_dict() for c in rows])


@app.get("/api/commodities/{commodity_id}")
async def get_commodity(commodity_id: PathId) -> dict[str, Any]:
    engine = _require_engine()
    commodity = await _run_in_executor(engine.get_commodity, commodity_id)
    return _ok(commodity.to_dict())


@app.post("/api/escrow/deposit")
async def deposit_funds(body: AmountRequest, x_principal: str = Header(..., min_length=1)) -> dict[str, Any]:
    engine = _require_engine()
    balance = await _run_mutation(engine.deposit_funds, x_principal, body.amount)
    return _ok({"balance": balance})


@app.post("/api/escrow/withdraw")
async def withdraw_funds(body: AmountRequest, x_principal: str = Header(..., min_length=1)) -> dict[str, Any]:
    engine = _require_engine()
    balance = await _run_mutation(engine.withdraw_funds, x_principal, body.amount)
    return _ok({"balance": balance})


@app.get("/api/escrow/{trader}")
async def get_escrow_balance(trader: str) -> dict[str, Any]:
    engine = _require_engine()
    account = await _run_in_executor(engine.get_escrow_account, trader)
    return _ok(account.to_dict())


@app.post("/api/positions")
async def execute_trade(body: ExecuteTradeRequest, x_principal: str = Header(..., min_length=1)) -> dict[str, Any]:
    engine = _require_engine()
    position = await _run_mutation(
        engine.execute_trade, x_principal, body.commodity_id, body.quantity, body.position_id
    )
    return _ok(position.to_dict())


@app.delete("/api/positions/{position_id}")
async def close_position(position_id: PathId, x_principal: str = Header(..., min_length=1)) -> dict[str, Any]:
    engine = _require_engine()
    settlement = await _run_mutation(engine.close_position, x_principal, position_id)
    return _ok(settlement.to_dict())


@app.get("/api/positions/{trader}")
async def list_positions(trader: str) -> dict[str, Any]:
    engine = _require_engine()
    rows = await _run_in_executor(engine.list_positions, trader)
    return _ok([p.to_dict() for p in rows])


@app.get("/api/positions/{trader}/{position_id}")
async def get_position(trader: str, position_id: PathId) -> dict[str, Any]:
    engine = _require_engine()
    position = await _run_in_executor(engine.get_position, trader, position_id)
    return _ok(position.to_dict())


@app.get("/api/history/events")
async def history_events(
    limit: int = Query(default=200, ge=1, le=2000),
    trader: str | None = Query(default=None),
) -> list[dict[str, Any]]:
    """DB-backed ledger journal, newest first."""
    engine = _require_engine()
    df = await _run_in_executor(engine.get_events, limit=limit, trader=trader)
    return _df_to_records(df)


@app.get("/api/history/trades")
async def history_trades(
    limit: int = Query(default=500, ge=1, le=5000),
    trader: str | None = Query(default=None),
) -> list[dict[str, Any]]:
    """DB-backed trade history, newest first."""
    engine = _require_engine()
    df = await _run_in_executor(engine.get_trades, limit=limit, trader=trader)
    return _df_to_records(df)


@app.get("/api/history/pnl/{trader}")
async def history_pnl(trader: str) -> dict[str, Any]:
    engine = _require_engine()
    summary = await _run_in_executor(engine.get_realized_pnl, trader)
    return jsonable_encoder(summary or {})


@app.get("/api/audit/reconcile")
async def audit_reconcile() -> dict[str, Any]:
    engine = _require_engine()
    report = await _run_in_executor(engine.reconcile)
    return report.to_dict()
