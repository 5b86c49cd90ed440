# tests/fixtures/app.py

"""
🧩 App Fixtures:
- `services`: full service graph over fakes (memory catalog, fake S3, fake MediaConvert)
- `app`: `create_app(services)` with a generous limiter
- `client`: httpx AsyncClient over ASGITransport, sending a valid `X-Device-ID`
- `series`: a seeded series record
"""

from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from streamvault.api.deps import Services, build_services
from streamvault.core.limiter import RateLimitState, SlidingWindowLimiter
from streamvault.main import create_app
from streamvault.repositories.catalog import MemoryCatalogStore, SeriesRecord
from tests.fixtures.fakes import FakeClock, FakeObjectStore, FakeTranscodingService

__all__ = ["catalog", "services", "app", "client", "series", "DEVICE_ID", "OTHER_DEVICE_ID"]

DEVICE_ID = "BP22.250325.006"
OTHER_DEVICE_ID = "Pixel8Pro.0042"


@pytest.fixture()
def catalog() -> MemoryCatalogStore:
    return MemoryCatalogStore()


@pytest.fixture()
def services(
    catalog: MemoryCatalogStore,
    fake_store: FakeObjectStore,
    fake_transcoder: FakeTranscodingService,
    fake_clock: FakeClock,
) -> Services:
    """🧪 Production wiring with every external system faked and polling on a virtual clock."""
    return build_services(
        store=fake_store,
        catalog=catalog,
        transcoder=fake_transcoder,
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )


@pytest.fixture()
def app(services: Services) -> FastAPI:
    limiter = SlidingWindowLimiter(RateLimitState(), window_seconds=900, max_requests=1000)
    return create_app(services, limiter=limiter)


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test", headers={"X-Device-ID": DEVICE_ID}
    ) as ac:
        yield ac


@pytest.fixture()
async def series(catalog: MemoryCatalogStore) -> SeriesRecord:
    return await catalog.create_series("Night Shift", "A hospital drama")
