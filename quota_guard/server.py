import contextlib
import logging
import math
import os
import time
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.status import HTTP_200_OK, HTTP_429_TOO_MANY_REQUESTS

from quota_guard import __version__
from quota_guard.di import Container
from quota_guard.errors import QuotaGuardError, VerificationError
from quota_guard.models import QuotaDecision
from quota_guard.service.quota_engine import QuotaDecisionEngine
from quota_guard.service.verification.base import HumanVerificationGate
from quota_guard.strategy.extractor.fingerprint import QuotaRequestExtractor

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.yml"


async def health(_request: Request) -> JSONResponse:
    """Health check endpoint.
    Args:
        _request: The incoming request (unused).
    Returns:
        A JSON response with status "ok".
    """
    return JSONResponse({"status": "ok"})


@contextlib.asynccontextmanager
async def lifespan(app: Starlette):  # type: ignore
    """Initialize the application and its components."""

    uvicorn_logger = logging.getLogger("uvicorn")
    root_logger = logging.getLogger()
    for handler in uvicorn_logger.handlers:
        root_logger.addHandler(handler)

    load_dotenv()
    app.state.container = Container()
    app.state.container.config.from_yaml(CONFIG_PATH)

    log_level = app.state.container.config.log_level().upper()
    root_logger.setLevel(log_level)
    logger.info(
        "Starting quota guard %s server with log level %s...", __version__, log_level
    )

    engine = app.state.container.engine()
    logger.info("Configured engine: %s", engine)
    logger.info("Configured tracker: %s", engine.tracker)
    logger.info("Configured detector: %s", engine.detector)
    logger.info("Configured verification: %s", app.state.container.verification_gate())
    logger.info("Configured identity: %s", app.state.container.request_extractor())

    yield

    logger.info("Shutting down quota guard server...")
    await app.state.container.verification_gate().close()
    await app.state.container.store().close()


def rate_limit_headers(decision: QuotaDecision) -> Dict[str, str]:
    """Rate limit metadata for client-side display."""
    reset = decision.reset_at
    headers = {
        "x-ratelimit-limit": str(decision.daily_limit),
        "x-ratelimit-remaining": str(decision.remaining),
        "x-ratelimit-reset": str(int(reset.timestamp())),
    }
    if not decision.allowed:
        seconds = reset.timestamp() - time.time()
        headers["retry-after"] = str(max(0, math.ceil(seconds)))
    return headers


def decision_response(decision: QuotaDecision, read_only: bool = False) -> JSONResponse:
    blocked = not decision.allowed and not read_only
    return JSONResponse(
        decision.to_dict(),
        status_code=HTTP_429_TOO_MANY_REQUESTS if blocked else HTTP_200_OK,
        headers=rate_limit_headers(decision),
    )


def error_response(error: QuotaGuardError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status_code)


async def consume_quota(request: Request) -> JSONResponse:
    """Metered endpoint: decide on the request and commit usage if allowed."""
    container: Container = request.app.state.container
    extractor: QuotaRequestExtractor = container.request_extractor()
    gate: HumanVerificationGate = container.verification_gate()
    engine: QuotaDecisionEngine = container.engine()

    try:
        quota_request = await extractor(request)

        if gate.enabled:
            verdict = await gate.verify(
                quota_request.verification_token, quota_request.address
            )
            if not verdict.ok:
                raise VerificationError(
                    "Human verification failed, solve a new challenge",
                    verdict.failure_codes,
                )

        decision = await engine.decide(quota_request.fingerprint, quota_request.address)
    except QuotaGuardError as e:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, e.code)
        return error_response(e)

    return decision_response(decision)


async def query_quota(request: Request) -> JSONResponse:
    """Read-only usage report. Never mutates counters."""
    container: Container = request.app.state.container
    extractor: QuotaRequestExtractor = container.request_extractor()
    engine: QuotaDecisionEngine = container.engine()

    try:
        quota_request = extractor.from_query(request)
        decision = await engine.query(quota_request.fingerprint, quota_request.address)
    except QuotaGuardError as e:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, e.code)
        return error_response(e)

    return decision_response(decision, read_only=True)


routes: List[Route] = [
    Route("/health", endpoint=health),
    Route("/quota", endpoint=consume_quota, methods=["POST"]),
    Route("/quota", endpoint=query_quota, methods=["GET"]),
]

app: Starlette = Starlette(routes=routes, lifespan=lifespan)

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, access_log=False)
