"""OrderFlow monitoring dashboard.

Lightweight FastAPI server for watching outbox queues, idempotency ledgers and
dead letters of every service, plus the operator actions on dead letters.

Usage:
    uvicorn src.monitor:app --host 0.0.0.0 --port 9000
"""

import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ObjectNotFoundError, ValidationError
from pydantic import BaseModel

from services import SERVICE_NAMES, load_service

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="OrderFlow Monitor",
    description="Monitoring dashboard for outboxes, idempotency ledgers and dead letters",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_runtimes() -> dict:
    """Service runtimes by name, initializing each domain on first use."""
    return {name: load_service(name)[1] for name in SERVICE_NAMES}


class Disposition(BaseModel):
    memo: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _runtime(runtimes, service):
    try:
        return runtimes[service]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown service: {service}") from None


def _outbox_status(runtime):
    """Query outbox counts for a service."""
    try:
        with runtime.domain.domain_context(), UnitOfWork():
            return {"status": "ok", "counts": runtime.outbox.count_by_status()}
    except Exception as e:
        logger.error(f"Error querying outbox for {runtime.name}: {e}")
        return {"status": "error", "error": str(e)}


def _ledger_status(runtime):
    try:
        with runtime.domain.domain_context():
            return {"status": "ok", "counts": runtime.ledger.count_by_status()}
    except Exception as e:
        logger.error(f"Error querying ledger for {runtime.name}: {e}")
        return {"status": "error", "error": str(e)}


def _dead_letter_status(runtime):
    try:
        return {"status": "ok", "counts": runtime.dead_letters.counts()}
    except Exception as e:
        logger.error(f"Error querying dead letters for {runtime.name}: {e}")
        return {"status": "error", "error": str(e)}


def _serialize(record):
    return jsonable_encoder({key: value for key, value in record.to_dict().items() if key not in ("stack_trace", "headers")})


def _dispose(runtimes, service, record_id, action, memo=None):
    admin = _runtime(runtimes, service).dead_letters
    try:
        if memo is None:
            record = getattr(admin, action)(record_id)
        else:
            record = getattr(admin, action)(record_id, memo=memo)
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Dead letter {record_id} not found") from None
    except ValidationError as e:
        raise HTTPException(status_code=409, detail=e.messages) from None
    return JSONResponse(content={"service": service, "dead_letter": _serialize(record)})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.get("/")
async def root():
    """Overall system status."""
    return JSONResponse(content={"service": "OrderFlow Monitor", "services": SERVICE_NAMES})


@app.get("/health")
async def health(runtimes: dict = Depends(get_runtimes)):
    """Broker connectivity and per-service backlog summary."""
    broker = next(iter(runtimes.values())).broker
    broker_health = broker.health() if hasattr(broker, "health") else {"healthy": True}

    pending = {name: _outbox_status(runtime).get("counts", {}).get("PENDING", 0) for name, runtime in runtimes.items()}
    return JSONResponse(
        content={
            "status": "ok" if broker_health.get("healthy", False) else "degraded",
            "broker": {"adapter": type(broker).__name__, **broker_health},
            "pending_outbox": pending,
        }
    )


@app.get("/outbox")
async def outbox_summary(runtimes: dict = Depends(get_runtimes)):
    """Combined outbox status for all services."""
    return JSONResponse(content={name: _outbox_status(runtime) for name, runtime in runtimes.items()})


@app.get("/streams")
async def streams(runtimes: dict = Depends(get_runtimes)):
    """Topics known to the broker and the backlog of each consumer group."""
    broker = next(iter(runtimes.values())).broker
    lags = {
        runtime.consumer.group: {topic: broker.lag(topic, runtime.consumer.group) for topic in runtime.consumer.topics}
        for runtime in runtimes.values()
    }
    return JSONResponse(content={"topics": broker.topics(), "consumer_lag": lags})


@app.get("/{service}/outbox")
async def service_outbox(service: str, runtimes: dict = Depends(get_runtimes)):
    return JSONResponse(content={"service": service, **_outbox_status(_runtime(runtimes, service))})


@app.get("/{service}/ledger")
async def service_ledger(service: str, runtimes: dict = Depends(get_runtimes)):
    return JSONResponse(content={"service": service, **_ledger_status(_runtime(runtimes, service))})


@app.get("/{service}/dead-letters")
async def service_dead_letters(service: str, status: str | None = None, runtimes: dict = Depends(get_runtimes)):
    """Dead letters of a service, newest first, optionally filtered by status."""
    admin = _runtime(runtimes, service).dead_letters
    try:
        records = admin.list(status=status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown dead-letter status: {status}") from None
    return JSONResponse(
        content={
            "service": service,
            "summary": _dead_letter_status(runtimes[service]),
            "dead_letters": [_serialize(record) for record in records],
        }
    )


@app.post("/{service}/dead-letters/{record_id}/processing")
async def start_processing(service: str, record_id: str, runtimes: dict = Depends(get_runtimes)):
    return _dispose(runtimes, service, record_id, "start_processing")


@app.post("/{service}/dead-letters/{record_id}/processed")
async def mark_processed(service: str, record_id: str, body: Disposition, runtimes: dict = Depends(get_runtimes)):
    return _dispose(runtimes, service, record_id, "mark_processed", memo=body.memo or "")


@app.post("/{service}/dead-letters/{record_id}/retry-failed")
async def mark_retry_failed(service: str, record_id: str, body: Disposition, runtimes: dict = Depends(get_runtimes)):
    return _dispose(runtimes, service, record_id, "mark_retry_failed", memo=body.memo or "")


@app.post("/{service}/dead-letters/{record_id}/ignored")
async def mark_ignored(service: str, record_id: str, body: Disposition, runtimes: dict = Depends(get_runtimes)):
    return _dispose(runtimes, service, record_id, "mark_ignored", memo=body.memo or "")


@app.post("/{service}/dead-letters/{record_id}/replay")
async def replay(service: str, record_id: str, runtimes: dict = Depends(get_runtimes)):
    """Republish a dead letter to its original topic (manual operator action)."""
    runtime = _runtime(runtimes, service)
    try:
        message = runtime.dead_letters.replay(record_id, runtime.broker)
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Dead letter {record_id} not found") from None
    except ValidationError as e:
        raise HTTPException(status_code=409, detail=e.messages) from None
    return JSONResponse(
        content={
            "service": service,
            "replayed_to": {"topic": message.topic, "partition": message.partition, "offset": message.offset},
        }
    )
