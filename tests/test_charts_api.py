import asyncio
import contextlib
import time

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from app.main import app, _buckets
from app.config import settings
from app.errors import ChartDataError
from app.routers.sizing import get_repository
from app.services.size_charts import default_repository
from app.services.charts_api import ChartsApiClient, refresh_charts, refresh_loop


BASE = "https://charts.example.com"


def _remote_document(document):
    document["version"] = "remote-2"
    document["charts"][0]["sizes"][0]["size"] = "xs"
    return document


@pytest.mark.asyncio
@respx.mock
async def test_fetch_snapshot(document):
    route = respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(200, json=document))
    snapshot = await ChartsApiClient(base=BASE, token="t0ken").fetch_snapshot()
    assert route.called
    assert route.calls.last.request.headers["Authorization"] == "Bearer t0ken"
    assert snapshot.version == "test"
    assert len(snapshot.charts) == 1


@pytest.mark.asyncio
@respx.mock
async def test_refresh_swaps_the_snapshot(repository, document):
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(200, json=_remote_document(document)))
    await refresh_charts(repository, ChartsApiClient(base=BASE, token=""))
    assert repository.snapshot.version == "remote-2"
    assert repository.get_chart("soccer", "boys", "jersey").labels[0] == "XS"


@pytest.mark.asyncio
@respx.mock
async def test_invalid_remote_document_keeps_current_charts(repository, document):
    document["charts"][0]["sizes"][1]["height_min_cm"] = 155  # gap after S
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(200, json=document))
    before = repository.snapshot
    with pytest.raises(ChartDataError):
        await refresh_charts(repository, ChartsApiClient(base=BASE, token=""))
    assert repository.snapshot is before


@pytest.mark.asyncio
@respx.mock
async def test_remote_failure_keeps_current_charts(repository):
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(500, json={"detail": "down"}))
    before = repository.snapshot
    with pytest.raises(httpx.HTTPStatusError):
        await refresh_charts(repository, ChartsApiClient(base=BASE, token=""))
    assert repository.snapshot is before


@pytest.mark.asyncio
async def test_client_without_base_refuses():
    with pytest.raises(RuntimeError):
        await ChartsApiClient(base="", token="").fetch_document()


@pytest.fixture
def api(repository, monkeypatch):
    monkeypatch.setattr(settings, "charts_api_base", BASE)
    monkeypatch.setattr(settings, "charts_api_token", None)
    app.dependency_overrides[get_repository] = lambda: repository
    _buckets.clear()
    yield TestClient(app)
    app.dependency_overrides.pop(get_repository, None)


@respx.mock
def test_refresh_endpoint(api, repository, document):
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(200, json=_remote_document(document)))
    r = api.post("/v1/sizing/charts/refresh", headers={"x-api-key": settings.api_key})
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "charts": 1, "version": "remote-2"}
    assert repository.snapshot.version == "remote-2"


@respx.mock
def test_refresh_endpoint_upstream_down(api, repository):
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(503))
    r = api.post("/v1/sizing/charts/refresh", headers={"x-api-key": settings.api_key})
    assert r.status_code == 502
    assert repository.snapshot.version == "test"


@pytest.mark.asyncio
@respx.mock
async def test_non_json_response_is_chart_data_error(repository):
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(200, text="<html>maintenance</html>"))
    before = repository.snapshot
    with pytest.raises(ChartDataError):
        await refresh_charts(repository, ChartsApiClient(base=BASE, token=""))
    assert repository.snapshot is before


@pytest.mark.asyncio
@respx.mock
async def test_refresh_loop_survives_failed_rounds(repository, document):
    responses = iter([
        httpx.Response(500),
        httpx.Response(200, text="<html>maintenance</html>"),
    ])
    good = _remote_document(document)

    def _respond(request):
        resp = next(responses, None)
        return resp if resp is not None else httpx.Response(200, json=good)

    route = respx.get(f"{BASE}/size-charts").mock(side_effect=_respond)
    task = asyncio.create_task(refresh_loop(repository, ChartsApiClient(base=BASE, token=""), 0.01))
    try:
        for _ in range(300):
            await asyncio.sleep(0.01)
            if repository.snapshot.version == "remote-2":
                break
        assert not task.done()
        assert repository.snapshot.version == "remote-2"
        assert route.call_count >= 3
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


@respx.mock
def test_refresh_endpoint_rejects_non_json(api, repository):
    respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(200, text="<html>maintenance</html>"))
    r = api.post("/v1/sizing/charts/refresh", headers={"x-api-key": settings.api_key})
    assert r.status_code == 502
    assert repository.snapshot.version == "test"


@respx.mock
def test_lifespan_starts_and_stops_refresher(monkeypatch):
    monkeypatch.setattr(settings, "charts_api_base", BASE)
    monkeypatch.setattr(settings, "charts_api_token", None)
    monkeypatch.setattr(settings, "chart_refresh_seconds", 3600)
    route = respx.get(f"{BASE}/size-charts").mock(return_value=httpx.Response(503))
    _buckets.clear()
    with TestClient(app) as c:
        assert c.get("/v1/health").status_code == 200
        for _ in range(200):
            if route.called:
                break
            time.sleep(0.01)
        assert route.called
    assert default_repository().snapshot.version == "2026.10"
