from __future__ import annotations

import asyncio
import logging
import sys
import time
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from dotenv import load_dotenv

from .analyzer import PrivacyAnalyzer, with_deadline
from .config import Settings
from .errors import InvalidRequest, InvalidUrl, NotFound, PrivacyHubError, Unauthorized, UpstreamRateLimited
from .history import HistoryStore
from .key_health import KeyHealthCache
from .models import (
    AnalysisResult,
    AnalyzeRequest,
    AnalyzeResponse,
    CreditsResponse,
    ErrorResponse,
    HistoryEntry,
    HistoryResponse,
)
from .rate_limiter import RateLimiter


# Load environment variables from the repo root .env (so OPENROUTER_API works in local dev)
_HERE = Path(__file__).resolve()
_AGENT_ROOT = _HERE.parents[1]
load_dotenv(_AGENT_ROOT / ".env", override=False)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

DISCONNECT_POLL_S = 0.5

app = FastAPI(title="PrivacyHub Agent", version="0.1.0")

# For local dev, this defaults to allowing http://localhost:3000.
# In production, set PRIVACYHUB_CORS_ORIGINS to your deployed frontend origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class _Services:
    """Process-wide singletons, created on first use."""

    key_cache: KeyHealthCache | None = None
    analyzer: PrivacyAnalyzer | None = None
    history: HistoryStore | None = None
    limiter: RateLimiter | None = None


def get_key_cache(settings: Settings = Depends(get_settings)) -> KeyHealthCache:
    if _Services.key_cache is None:
        _Services.key_cache = KeyHealthCache(
            settings.scoring_credentials,
            ttl_s=settings.key_status_ttl_hours * 3600,
        )
    return _Services.key_cache


def get_analyzer(
    settings: Settings = Depends(get_settings),
    keys: KeyHealthCache = Depends(get_key_cache),
) -> PrivacyAnalyzer:
    if _Services.analyzer is None:
        _Services.analyzer = PrivacyAnalyzer.from_settings(settings, keys)
    return _Services.analyzer


def get_history() -> HistoryStore:
    if _Services.history is None:
        _Services.history = HistoryStore()
    return _Services.history


def get_rate_limiter(settings: Settings = Depends(get_settings)) -> RateLimiter:
    if _Services.limiter is None:
        _Services.limiter = RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_s=settings.rate_limit_window_minutes * 60,
        )
    return _Services.limiter


@app.exception_handler(PrivacyHubError)
async def privacyhub_error_handler(request: Request, exc: PrivacyHubError):
    settings = app.dependency_overrides.get(get_settings, get_settings)()
    headers = {"Retry-After": "60"} if isinstance(exc, UpstreamRateLimited) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(include_details=settings.is_development),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    if request.url.path == "/analyze" and all(err["loc"][0] == "body" for err in errors):
        error: PrivacyHubError = InvalidUrl("URL must be a non-empty string.", details=errors)
    else:
        error = InvalidRequest(details=errors)
    return await privacyhub_error_handler(request, error)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=PrivacyHubError().to_payload())


def _client_id(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


async def _run_analysis(
    request: Request,
    analyzer: PrivacyAnalyzer,
    url: str,
    timeout_s: float,
) -> AnalysisResult | None:
    """Run the pipeline under its deadline; returns None if the client went away first."""
    task = asyncio.ensure_future(with_deadline(analyzer.analyze(url), timeout_s))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_S)
            if done:
                break
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling analysis of %s", url)
                task.cancel()
                # Let browser and HTTP teardown finish before the handler returns.
                await asyncio.wait({task})
                return None
        try:
            return task.result()
        except PrivacyHubError:
            raise
        except Exception as e:
            logger.exception("Unexpected analysis failure for %s", url)
            raise PrivacyHubError(details={"type": type(e).__name__, "message": str(e)}) from e
    finally:
        if not task.done():
            task.cancel()


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={status: {"model": ErrorResponse} for status in (400, 429, 500, 504)},
)
async def analyze_endpoint(
    req: AnalyzeRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
    history: HistoryStore = Depends(get_history),
    analyzer: PrivacyAnalyzer = Depends(get_analyzer),
):
    decision = limiter.check(_client_id(request))
    if not decision.allowed:
        retry_after = decision.retry_after_s(time.time())
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Rate limit exceeded",
                "message": f"Too many analysis requests. Try again in {retry_after} seconds.",
            },
            headers={"Retry-After": str(retry_after)},
        )

    started = time.perf_counter()
    logger.info("Analysis requested for %s", req.url)
    result = await _run_analysis(request, analyzer, req.url, settings.pipeline_timeout_s)
    if result is None:
        return Response(status_code=499)

    await history.add(result)
    logger.info("Analysis for %s finished in %.1fs", req.url, time.perf_counter() - started)
    return {"success": True, "data": result}


def _credits_text(summary: dict) -> str:
    lines = [
        f"Scoring keys: {summary['availableKeys']}/{summary['totalKeys']} available ({summary['overallHealth']})",
        f"Total credits: {summary['totalCredits']:.2f}",
        f"Rate limit remaining: {summary['totalRateLimitRemaining']}",
    ]
    for key in summary["keys"]:
        state = "available" if key["isAvailable"] else f"unavailable ({key['error'] or 'unknown'})"
        lines.append(f"- {key['name']}: {state}, credits {key['credits']:.2f}, checked {key['lastChecked']}")
    return "\n".join(lines) + "\n"


@app.get("/credits", response_model=CreditsResponse)
async def credits_endpoint(
    format: str = Query("json", pattern="^(json|text)$"),
    refresh: bool = False,
    keys: KeyHealthCache = Depends(get_key_cache),
):
    await keys.ensure_fresh(force=refresh)
    summary = keys.summary()
    if format == "text":
        return PlainTextResponse(_credits_text(summary))
    return {"success": True, **summary, "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/cron/refresh-keys")
async def cron_refresh_keys(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
    keys: KeyHealthCache = Depends(get_key_cache),
):
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise Unauthorized("Invalid or missing cron secret.")
    await keys.refresh_all()
    summary = keys.summary()
    logger.info("Scheduled key refresh: %s", summary["overallHealth"])
    return {
        "success": True,
        "availableKeys": summary["availableKeys"],
        "totalKeys": summary["totalKeys"],
        "overallHealth": summary["overallHealth"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/history", response_model=HistoryResponse)
async def list_history(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    stats: bool = False,
    history: HistoryStore = Depends(get_history),
):
    entries = await history.list(limit=limit, offset=offset)
    summary = await history.stats()
    return HistoryResponse(
        analyses=entries,
        total=summary.total_analyses,
        stats=summary if stats else None,
    )


@app.get("/history/{entry_id}", response_model=HistoryEntry)
async def get_history_entry(entry_id: int, history: HistoryStore = Depends(get_history)):
    entry = await history.get(entry_id)
    if entry is None:
        raise NotFound()
    return entry


@app.post("/history/{entry_id}/refresh", response_model=HistoryEntry)
async def refresh_history_entry(
    entry_id: int,
    request: Request,
    settings: Settings = Depends(get_settings),
    history: HistoryStore = Depends(get_history),
    analyzer: PrivacyAnalyzer = Depends(get_analyzer),
):
    entry = await history.get(entry_id)
    if entry is None:
        raise NotFound()
    result = await _run_analysis(request, analyzer, entry.url, settings.pipeline_timeout_s)
    if result is None:
        return Response(status_code=499)
    updated = await history.refresh(entry_id, result)
    if updated is None:
        raise NotFound()
    return updated


@app.delete("/history/{entry_id}")
async def delete_history_entry(entry_id: int, history: HistoryStore = Depends(get_history)):
    if not await history.delete(entry_id):
        raise NotFound()
    return {"success": True, "id": entry_id}
