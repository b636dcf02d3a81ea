from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse

from signalgate.core.config import settings
from signalgate.core.errors import InvalidSignal, PersistenceFailure
from signalgate.events.broadcast import Broadcaster
from signalgate.events.sink import EventSink
from signalgate.exchange.binance.client import BinanceFuturesClient
from signalgate.execution.executor import BinanceExecutor
from signalgate.persistence.activity_log import ActivityLog
from signalgate.persistence.alerts import recent_alerts
from signalgate.persistence.db import DB
from signalgate.runner.processor import AlertProcessor

log = logging.getLogger("signalgate.api")

app = FastAPI(title="SignalGate")
broadcaster = Broadcaster()
processor_instance: AlertProcessor | None = None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_processor() -> AlertProcessor:
    global processor_instance

    if processor_instance is None:
        db = DB(settings.DB_PATH)
        sink = EventSink(ActivityLog(settings.ACTIVITY_LOG_PATH), [broadcaster.publish])
        client = BinanceFuturesClient(
            api_key=settings.BINANCE_API_KEY,
            api_secret=settings.BINANCE_API_SECRET,
            base_url=settings.BINANCE_FAPI_BASE_URL,
            recv_window=settings.BINANCE_RECV_WINDOW,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        executor = BinanceExecutor(client, settings, sink=sink)
        processor_instance = AlertProcessor(
            db=db, executor=executor, sink=sink, cfg=settings
        )

    return processor_instance


@app.on_event("startup")
def _startup():
    """Fail-fast config validation, then make sure the state record exists."""
    _configure_logging()
    for w in settings.validate_runtime():
        log.warning("[CONFIG WARNING] %s", w)

    st = get_processor().startup()
    log.info(
        "listening for alerts mode=%s execution=%s scope=%s",
        st.mode.value,
        settings.EXECUTION_MODE,
        settings.STATE_SCOPE,
    )


@app.post("/webhook")
def webhook(payload: Any = Body(None)):
    if not isinstance(payload, dict) or not payload:
        return JSONResponse(status_code=400, content={"message": "Empty payload received"})

    try:
        result = get_processor().handle(payload)
    except InvalidSignal as e:
        return JSONResponse(status_code=400, content={"message": str(e)})
    except PersistenceFailure:
        log.exception("state store unavailable while handling alert")
        return JSONResponse(status_code=500, content={"message": "Internal server error"})
    except Exception:
        log.exception("error in /webhook")
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    return {"message": "Webhook processed", **result.to_dict()}


@app.get("/stream-signals")
def stream_signals():
    q = broadcaster.subscribe()
    return StreamingResponse(
        broadcaster.stream(q),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/state")
def state():
    return {"states": get_processor().snapshot()}


@app.get("/alerts/recent")
def alerts_recent(limit: int = 50):
    limit = max(1, min(limit, 300))
    data = recent_alerts(get_processor().db, limit)
    return {"count": len(data), "alerts": data}


@app.get("/logs/activity/tail")
def logs_activity_tail(limit: int = 50):
    limit = max(1, min(limit, 1000))
    sink = get_processor().sink
    data = sink.activity.tail(limit) if sink.activity else []
    return {"count": len(data), "entries": data}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "time_utc": _utc_now_iso(),
        "execution_mode": settings.EXECUTION_MODE,
        "binance_env": settings.BINANCE_ENV,
        "binance_base_url": settings.BINANCE_FAPI_BASE_URL,
        "default_pair": settings.DEFAULT_PAIR,
        "state_scope": settings.STATE_SCOPE,
        "stream_clients": broadcaster.client_count,
        "sizing": {
            "base_margin_usdt": settings.BASE_MARGIN_USDT,
            "min_notional_usdt": settings.MIN_NOTIONAL_USDT,
            "leverage_low": settings.LEVERAGE_LOW,
            "leverage_high": settings.LEVERAGE_HIGH,
        },
    }


@app.get("/debug/config")
def debug_config():
    return {"config": settings.public_dict()}


def run() -> None:
    uvicorn.run(app, host=settings.HTTP_HOST, port=settings.HTTP_PORT)
