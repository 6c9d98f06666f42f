"""
HTTP surface tests: status mapping, credits snapshot, history and rate limiting.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from privacyhub_agent import main
from privacyhub_agent.aggregator import compute
from privacyhub_agent.assembler import assemble_result
from privacyhub_agent.config import Settings
from privacyhub_agent.errors import (
    AnalysisParseError,
    ConfigurationError,
    ConnectionFailed,
    DiscoveryFailed,
    InvalidContent,
    InvalidUrl,
    PipelineTimeout,
    UpstreamRateLimited,
)
from privacyhub_agent.history import HistoryStore
from privacyhub_agent.key_health import CredentialCheckError, KeyHealthCache
from privacyhub_agent.models import FetchedContent
from privacyhub_agent.rate_limiter import RateLimiter

from .conftest import POLICY_TEXT, SCENARIO_SCORES, make_analysis


def build_result(url="https://example.com/privacy"):
    return assemble_result(
        requested_url=url,
        content=_content(url),
        analysis=make_analysis(),
        aggregate=compute(SCENARIO_SCORES),
    )


def _content(url):
    return FetchedContent(
        url=url,
        title="Example - Privacy Policy",
        raw_text=POLICY_TEXT,
        hostname="example.com",
        fetch_method="structured-scrape",
    )


class StubAnalyzer:
    def __init__(self, outcome=None, delay: float = 0):
        self.outcome = outcome
        self.delay = delay
        self.urls = []

    async def analyze(self, url):
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome or build_result()


@pytest.fixture
def settings():
    return Settings(environment="production")


@pytest.fixture
def services(settings, credentials, healthy_checker):
    state = {
        "settings": settings,
        "analyzer": StubAnalyzer(),
        "history": HistoryStore(),
        "limiter": RateLimiter(max_requests=100),
        "keys": KeyHealthCache(credentials, checker=healthy_checker),
    }
    overrides = {
        main.get_settings: lambda: state["settings"],
        main.get_analyzer: lambda: state["analyzer"],
        main.get_history: lambda: state["history"],
        main.get_rate_limiter: lambda: state["limiter"],
        main.get_key_cache: lambda: state["keys"],
    }
    main.app.dependency_overrides.update(overrides)
    yield state
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    with TestClient(main.app) as c:
        yield c


class TestAnalyzeEndpoint:
    """POST /analyze success and error envelopes."""

    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"ok": True}

    def test_success(self, client, services):
        res = client.post("/analyze", json={"url": "example.com"})
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"]["grade"] == "A-"
        assert body["data"]["risk_level"] == "LOW"
        assert body["data"]["scraper_used"] == "firecrawl"
        assert services["analyzer"].urls == ["example.com"]

    @pytest.mark.parametrize(
        "error,status,code",
        [
            (InvalidUrl("bad"), 400, "Invalid URL"),
            (DiscoveryFailed(), 400, "Privacy policy not found"),
            (ConnectionFailed(), 400, "Connection failed"),
            (InvalidContent(), 400, "Invalid content"),
            (UpstreamRateLimited(), 429, "Rate limit exceeded"),
            (AnalysisParseError(), 500, "Analysis parse error"),
            (ConfigurationError(), 500, "API configuration error"),
            (PipelineTimeout(), 504, "Timeout"),
            (RuntimeError("boom"), 500, "Internal server error"),
        ],
    )
    def test_error_mapping(self, client, services, error, status, code):
        services["analyzer"] = StubAnalyzer(error)
        res = client.post("/analyze", json={"url": "https://example.com/privacy"})
        assert res.status_code == status
        body = res.json()
        assert body["success"] is False
        assert body["error"] == code
        assert body["message"]
        assert "details" not in body

    def test_details_only_in_development(self, client, services):
        services["settings"] = Settings(environment="development")
        services["analyzer"] = StubAnalyzer(InvalidContent(details={"content_length": 50}))
        body = client.post("/analyze", json={"url": "https://example.com/privacy"}).json()
        assert body["details"] == {"content_length": 50}

    def test_upstream_rate_limit_sets_retry_after(self, client, services):
        services["analyzer"] = StubAnalyzer(UpstreamRateLimited())
        res = client.post("/analyze", json={"url": "https://example.com/privacy"})
        assert res.headers["retry-after"]

    def test_deadline(self, client, services):
        services["settings"] = Settings(pipeline_timeout_s=0.05)
        services["analyzer"] = StubAnalyzer(delay=2)
        res = client.post("/analyze", json={"url": "https://example.com/privacy"})
        assert res.status_code == 504
        assert res.json()["error"] == "Timeout"

    def test_local_rate_limit(self, client, services):
        services["limiter"] = RateLimiter(max_requests=2)
        for _ in range(2):
            assert client.post("/analyze", json={"url": "example.com"}).status_code == 200
        res = client.post("/analyze", json={"url": "example.com"})
        assert res.status_code == 429
        assert res.json()["error"] == "Rate limit exceeded"
        assert int(res.headers["retry-after"]) > 0
        assert len(services["analyzer"].urls) == 2

    @pytest.mark.parametrize("payload", [{}, {"url": ""}, {"url": 123}, {"link": "example.com"}])
    def test_missing_or_malformed_url(self, client, services, payload):
        res = client.post("/analyze", json=payload)
        assert res.status_code == 400
        body = res.json()
        assert body["success"] is False
        assert body["error"] == "Invalid URL"
        assert body["message"]
        assert "details" not in body
        assert services["analyzer"].urls == []

    def test_bad_query_parameter_uses_envelope(self, client):
        res = client.get("/history", params={"limit": 0})
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid request"

    def test_error_schema_documented(self, client):
        responses = client.get("/openapi.json").json()["paths"]["/analyze"]["post"]["responses"]
        for status in ("400", "429", "500", "504"):
            schema = responses[status]["content"]["application/json"]["schema"]
            assert schema["$ref"].endswith("/ErrorResponse")


class TestCreditsEndpoint:
    def test_json_snapshot(self, client):
        body = client.get("/credits").json()
        assert body["success"] is True
        assert body["totalKeys"] == 3
        assert body["availableKeys"] == 3
        assert body["overallHealth"] == "operational"
        assert {k["name"] for k in body["keys"]} == {"openrouter-default", "openrouter-one", "openrouter-two"}
        assert "sk-or-" not in str(body)

    def test_refresh_forces_recheck(self, client, healthy_checker):
        client.get("/credits")
        client.get("/credits")
        assert len(healthy_checker.calls) == 3
        client.get("/credits", params={"refresh": "true"})
        assert len(healthy_checker.calls) == 6

    def test_text_format(self, client):
        res = client.get("/credits", params={"format": "text"})
        assert res.headers["content-type"].startswith("text/plain")
        assert "3/3 available" in res.text

    def test_degraded(self, client, services, credentials):
        async def checker(credential):
            if credential.name == "openrouter-two":
                raise CredentialCheckError("HTTP 402")
            return {"credits": 1.0, "rate_limit_remaining": 5}

        services["keys"] = KeyHealthCache(credentials, checker=checker)
        body = client.get("/credits").json()
        assert body["overallHealth"] == "degraded"
        assert body["availableKeys"] == 2


class TestCronRefresh:
    def test_requires_secret_when_configured(self, client, services, healthy_checker):
        services["settings"] = Settings(cron_secret="s3cret")
        denied = client.get("/cron/refresh-keys")
        assert denied.status_code == 401
        assert denied.json()["success"] is False
        assert denied.json()["error"] == "Unauthorized"
        assert client.get("/cron/refresh-keys", headers={"Authorization": "Bearer wrong"}).status_code == 401

        res = client.get("/cron/refresh-keys", headers={"Authorization": "Bearer s3cret"})
        assert res.status_code == 200
        assert res.json()["availableKeys"] == 3
        assert len(healthy_checker.calls) == 3


class TestHistoryEndpoints:
    """Every analysis is recorded; refresh updates in place."""

    def test_list_get_refresh_delete(self, client, services):
        client.post("/analyze", json={"url": "example.com"})
        client.post("/analyze", json={"url": "example.com"})

        listing = client.get("/history", params={"stats": "true"}).json()
        assert listing["total"] == 2
        assert [a["id"] for a in listing["analyses"]] == [2, 1]
        assert listing["analyses"][0]["brand_name"] == "Example"
        assert listing["stats"]["average_score"] == pytest.approx(8.28)
        assert listing["stats"]["category_averages"]["data_collection"] == pytest.approx(9)

        assert client.get("/history/1").json()["id"] == 1

        refreshed = client.post("/history/1/refresh")
        assert refreshed.status_code == 200
        assert refreshed.json()["id"] == 1
        assert client.get("/history").json()["total"] == 2

        assert client.delete("/history/1").status_code == 200
        missing = client.get("/history/1")
        assert missing.status_code == 404
        assert missing.json() == {"success": False, "error": "Not found", "message": "Analysis not found."}
        assert client.delete("/history/1").status_code == 404

    def test_pagination(self, client):
        for _ in range(3):
            client.post("/analyze", json={"url": "example.com"})
        page = client.get("/history", params={"limit": 1, "offset": 1}).json()
        assert [a["id"] for a in page["analyses"]] == [2]
        assert page["stats"] is None

    def test_failed_analysis_not_recorded(self, client, services):
        services["analyzer"] = StubAnalyzer(InvalidContent())
        client.post("/analyze", json={"url": "example.com"})
        assert client.get("/history").json()["total"] == 0

    def test_refresh_unknown_entry(self, client):
        assert client.post("/history/99/refresh").status_code == 404


class DisconnectedRequest:
    async def is_disconnected(self):
        return True


@pytest.mark.asyncio
class TestClientDisconnect:
    """A client that goes away cancels its analysis and waits for cleanup."""

    async def test_cancelled_and_cleaned_up(self, monkeypatch):
        monkeypatch.setattr(main, "DISCONNECT_POLL_S", 0.01)
        cleaned_up = asyncio.Event()

        class SlowAnalyzer:
            async def analyze(self, url):
                try:
                    await asyncio.sleep(10)
                finally:
                    await asyncio.sleep(0)
                    cleaned_up.set()

        result = await main._run_analysis(DisconnectedRequest(), SlowAnalyzer(), "https://example.com/privacy", 30)

        assert result is None
        assert cleaned_up.is_set()
