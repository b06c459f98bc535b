"""FastAPI gateway exposing the adapter client over HTTP."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from adapter_relay import __version__
from adapter_relay.adapters import AdapterType, get_adapter_registry
from adapter_relay.config import get_settings
from adapter_relay.core import create_client, create_pipeline
from adapter_relay.exceptions import CircuitOpenError, InvalidAdapterError
from adapter_relay.metrics import MetricsExporter
from adapter_relay.models import BatchRunBody, RunAdapterBody
from adapter_relay.utils import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info(
        "startup",
        version=__version__,
        host=settings.host,
        port=settings.port,
        base_url=settings.base_url,
        health_check=settings.health_check_enabled,
    )

    client = create_client(settings, get_adapter_registry())
    app.state.client = client
    app.state.pipeline = create_pipeline(client)
    app.state.settings = settings

    async with client:
        yield

    logger.info("shutdown")


app = FastAPI(
    title="Adapter Relay",
    description="Resilient gateway to remote adapter services",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint."""
    return {"status": "ready"}


@app.get("/metrics")
async def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    content_type, metrics_body = MetricsExporter.get_prometheus_format()
    return PlainTextResponse(
        content=metrics_body.decode("utf-8"),
        media_type=content_type,
    )


@app.get("/health/system")
async def system_health(request: Request) -> JSONResponse:
    """Check the adapter service now."""
    report = await request.app.state.client.check_health()
    return JSONResponse(
        status_code=status.HTTP_200_OK if report.healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=report.to_dict(),
    )


@app.get("/adapters")
async def list_adapters(
    request: Request,
    adapter_type: str | None = Query(None, alias="type"),
) -> JSONResponse:
    """Registered adapters, optionally filtered by ``?type=``."""
    registry = request.app.state.client.registry
    adapters = registry.list_adapters()
    if adapter_type is not None:
        try:
            wanted = set(registry.ids_of_type(AdapterType(adapter_type)))
        except ValueError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"status": "error", "error": f"Unknown adapter type: {adapter_type}"},
            )
        adapters = [adapter for adapter in adapters if adapter["id"] in wanted]
    return JSONResponse(content={"adapters": adapters})


@app.post("/adapters/batch")
async def run_batch(body: BatchRunBody, request: Request) -> JSONResponse:
    """Run several adapters concurrently."""
    pipeline = request.app.state.pipeline
    results = await pipeline.run_parallel(body.input, body.adapter_ids, body.context)
    return JSONResponse(
        content={"results": [r.model_dump(mode="json", exclude_none=True) for r in results]},
    )


@app.post("/adapters/{adapter_id}/run")
async def run_adapter(adapter_id: str, body: RunAdapterBody, request: Request) -> JSONResponse:
    """Run one adapter through the resilient client."""
    client = request.app.state.client
    try:
        response = await client.call(adapter_id, body.input, body.context)
    except InvalidAdapterError as e:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"status": "error", "error": str(e)},
        )
    except CircuitOpenError as e:
        logger.warning("request.circuit_open", adapter_id=adapter_id)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "error": str(e)},
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK if response.ok else status.HTTP_502_BAD_GATEWAY,
        content=response.model_dump(mode="json", exclude_none=True),
    )


@app.get("/circuits")
async def list_circuits(request: Request) -> JSONResponse:
    """Circuit breaker statistics."""
    return JSONResponse(content={"circuits": request.app.state.client.circuit_stats()})


@app.post("/circuits/reset")
async def reset_circuits(request: Request) -> JSONResponse:
    """Force every circuit breaker back to CLOSED."""
    request.app.state.client.breakers.reset_all()
    logger.info("circuits.reset")
    return JSONResponse(content={"status": "reset"})


def main():
    """CLI entry point."""
    import uvicorn
    settings = get_settings()

    uvicorn.run(
        "adapter_relay.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
