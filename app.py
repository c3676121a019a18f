import json
import sys
import time
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger
from langgraph.graph import StateGraph, START, END

from settings import ConfigError, Settings
from graph.state import RelayState
from graph.nodes.capture import capture
from graph.nodes.dedupe import dedupe, release
from graph.nodes.resolve import resolve_customer
from graph.nodes.create_job import create_job
from tools.errors import UpstreamError, ValidationError
from tools.idempotency import Idem
from tools.leap import LeapClient
from tools.signature import SIGNATURE_HEADER, verify_signature

VERSION = "1.0.0"


def build_workflow(leap: LeapClient, settings: Settings, idem: Optional[Idem] = None):
    """Build the SalesPro to Leap relay workflow."""
    workflow = StateGraph(RelayState)

    async def resolve_node(state: RelayState) -> RelayState:
        return await resolve_customer(state, leap)

    async def create_job_node(state: RelayState) -> RelayState:
        return await create_job(state, leap, settings.no_sale_status)

    # Add nodes
    workflow.add_node("capture", capture)
    workflow.add_node("dedupe", lambda state: dedupe(state, idem))
    workflow.add_node("resolve_customer", resolve_node)
    workflow.add_node("create_job", create_job_node)
    workflow.add_node("release", lambda state: release(state, idem))

    workflow.add_edge(START, "capture")

    def after_capture(state: RelayState) -> str:
        return "invalid" if state.get("validation_errors") else "valid"

    def after_dedupe(state: RelayState) -> str:
        return "duplicate" if state.get("duplicate") else "new"

    def after_upstream(state: RelayState) -> str:
        return "failed" if state.get("upstream_error") else "ok"

    workflow.add_conditional_edges("capture", after_capture, {"valid": "dedupe", "invalid": END})
    workflow.add_conditional_edges("dedupe", after_dedupe, {"new": "resolve_customer", "duplicate": END})
    workflow.add_conditional_edges("resolve_customer", after_upstream, {"ok": "create_job", "failed": "release"})
    workflow.add_conditional_edges("create_job", after_upstream, {"ok": END, "failed": "release"})
    workflow.add_edge("release", END)

    return workflow.compile()


def create_app(settings: Settings, leap: Optional[LeapClient] = None, idem: Optional[Idem] = None) -> FastAPI:
    """
    Create the relay application.

    Args:
        settings: Startup configuration, shared read-only by all requests
        leap: Leap client (built from settings when omitted)
        idem: Idempotency store (built when REDIS_URL is configured)
    """
    app = FastAPI(
        title="SalesPro to Leap Webhook Relay",
        description="Relays SalesPro customer and estimate webhooks into Leap CRM",
        version=VERSION
    )

    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    if leap is None:
        leap = LeapClient(settings)
    if idem is None and settings.redis_url:
        idem = Idem(settings.redis_url, ttl=settings.idempotency_ttl)

    app.state.settings = settings
    app.state.idem = idem
    app.state.workflow = build_workflow(leap, settings, idem)

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "SalesPro to Leap webhook relay is running"

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "services": {
                "idempotency": idem.backend if idem else "disabled",
                "workflow": "ready"
            }
        }

    @app.post("/webhook")
    async def salespro_webhook(req: Request):
        """
        Relay a SalesPro webhook into Leap.

        Accepts either an estimate object:
        {
            "customer": {"firstName": "Jane", "lastName": "Doe", "emails": [{"email": "j@x.com"}], ...},
            "estimate": {"id": "E1", "saleAmount": 500, "isSale": true, ...}
        }
        or an appointment array of {"appKey": ..., "value": ...} records.
        """
        start_time = time.time()
        body = await req.body()

        if not verify_signature(body, req.headers.get(SIGNATURE_HEADER), settings.webhook_secret):
            logger.warning("Webhook signature verification failed")
            return JSONResponse(status_code=401, content={"status": "unauthorized"})

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(
                "Invalid payload",
                [{"field": "body", "message": f"request body is not valid JSON: {e}"}]
            )

        logger.info(f"Received SalesPro webhook ({type(payload).__name__} body)")

        result = await app.state.workflow.ainvoke({"raw": payload, "errors": []})

        if result.get("validation_errors"):
            raise ValidationError("Invalid payload", result["validation_errors"])
        if result.get("upstream_error"):
            raise result["upstream_error"]

        processing_time = time.time() - start_time

        if result.get("duplicate"):
            return JSONResponse(
                status_code=200,
                content={
                    "status": "duplicate_ignored",
                    "message": "Webhook already relayed",
                    "key": result.get("idempotency_key")
                }
            )

        logger.info(
            f"Relayed {result.get('idempotency_key') or 'webhook'} in {processing_time:.2f}s: "
            f"customer {result['customer_id']}, {leap.job_resource.rstrip('s')} {result['job_id']}"
        )

        return JSONResponse(
            status_code=200,
            content={
                "status": "success",
                "customer_id": result["customer_id"],
                "job_id": result["job_id"],
                "customer_created": result["customer_created"],
                "processing_time": processing_time,
                "customer": result.get("customer_record"),
                "job": result.get("job_record")
            }
        )

    # Error handlers
    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.message, "errors": exc.errors}
        )

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError):
        logger.error(f"Relay to Leap failed: {exc.message} ({exc.upstream_status}): {exc.detail}")
        content = {"status": "error", "message": "Failed to relay webhook to Leap CRM"}
        if not settings.is_production:
            content["detail"] = {
                "error": exc.message,
                "upstream_status": exc.upstream_status,
                "response": exc.detail
            }
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"}
        )

    return app


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(settings.log_file, rotation="1 day", retention="7 days", level=settings.log_level)


def main() -> int:
    import uvicorn

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error(f"Refusing to start: {e}")
        return 1

    configure_logging(settings)
    if not settings.webhook_secret:
        logger.warning("SALESPRO_WEBHOOK_SECRET not set, webhook endpoint is unauthenticated")

    logger.info(f"Starting SalesPro to Leap webhook relay on port {settings.port}")

    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower()
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
