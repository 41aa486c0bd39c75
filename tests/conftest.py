"""
Shared fixtures: an in-memory backing store served by the FastAPI app, and
engines wired to it through httpx.ASGITransport.
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

from api.core.security import create_access_token
from api.main import create_app
from api.models.store import RecordStore
from craftsync.config import SyncConfig
from craftsync.connectivity import ConnectivityMonitor
from craftsync.engine import SyncEngine

ADMIN = "catalog-admin"


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingTransport(httpx.AsyncBaseTransport):
    """Wraps another transport; counts requests and can fail or stall selected ones."""

    def __init__(self, inner: httpx.AsyncBaseTransport):
        self.inner = inner
        self.requests: list[httpx.Request] = []
        self.fail_when: Optional[Callable[[httpx.Request], bool]] = None
        self.fail_status = 503
        self.hold_when: Optional[Callable[[httpx.Request], bool]] = None
        self.held = asyncio.Event()
        self.release = asyncio.Event()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_when is not None and self.fail_when(request):
            return httpx.Response(self.fail_status, json={"error": "Service Unavailable"})
        response = await self.inner.handle_async_request(request)
        if self.hold_when is not None and self.hold_when(request):
            self.hold_when = None
            self.held.set()
            await self.release.wait()
        return response

    def count(self, path_fragment: str = "") -> int:
        return sum(1 for r in self.requests if path_fragment in r.url.path)


def recipe_fields(name: str, category: str = "Tools", output: int = 1, **extra) -> dict:
    fields = {
        "name": name,
        "image": name.lower().replace(" ", "_"),
        "ingredients": ["Stick", "Planks"],
        "output": output,
        "category": category,
    }
    fields.update(extra)
    return fields


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def app(store):
    return create_app(store)


@pytest.fixture
def seed_recipes(store) -> Callable[..., None]:
    """Create recipes with integer record names 1..n (or the given names)."""

    def seed(names: list[str], start_id: int = 1) -> None:
        for offset, name in enumerate(names):
            store.create("Recipe", recipe_fields(name), ADMIN, record_name=str(start_id + offset))

    return seed


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def make_engine(app, tmp_path: Path, clock):
    """
    Factory for engines talking to the app in-process.

    Returns (engine, transport). Engines are closed at teardown.
    """
    engines: list[SyncEngine] = []

    def factory(
        user_id: str = "alice",
        page_size: int = 200,
        cache_dir: Optional[Path] = None,
        **kwargs,
    ) -> tuple[SyncEngine, CountingTransport]:
        transport = CountingTransport(httpx.ASGITransport(app=app))
        config = SyncConfig(
            api_base_url="http://testserver",
            access_token=create_access_token(user_id),
            page_size=page_size,
            cache_dir=cache_dir or tmp_path / user_id,
        )
        engine = SyncEngine(
            config,
            monitor=kwargs.pop("monitor", None) or ConnectivityMonitor(),
            transport=transport,
            clock=clock,
            **kwargs,
        )
        engines.append(engine)
        return engine, transport

    yield factory

    for engine in engines:
        await engine.close()
