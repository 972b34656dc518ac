import asyncio
import inspect
import pathlib
import sys
from collections.abc import Awaitable, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from symbol_sync.db.init import init_database  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            funcargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**funcargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class RecordingMetrics:
    """Stand-in metrics sink that remembers what it was told."""

    def __init__(self) -> None:
        self.api_calls: list[str] = []
        self.errors: list[str] = []
        self.passes: list[object] = []

    def api_call(self, endpoint: str) -> None:
        self.api_calls.append(endpoint)

    def error(self, kind: str) -> None:
        self.errors.append(kind)

    def record_pass(self, report: object) -> None:
        self.passes.append(report)


@pytest.fixture
def recording_metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def catalog_factory(tmp_path: pathlib.Path) -> Callable[[], Awaitable[async_sessionmaker[AsyncSession]]]:
    """Build a session factory over a fresh SQLite catalog inside the running loop."""

    url = f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"

    async def _build() -> async_sessionmaker[AsyncSession]:
        engine = create_async_engine(url, poolclass=NullPool)
        await init_database(engine)
        return async_sessionmaker(engine, expire_on_commit=False)

    return _build
