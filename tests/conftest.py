from collections.abc import Callable

import pytest

from botframe.context import BotContext
from tests.fakes import FakeClient, FakeStore, FakeTransport, make_context


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def context(
    fake_transport: FakeTransport, fake_store: FakeStore, fake_client: FakeClient
) -> BotContext:
    return make_context(
        store=fake_store, transport=fake_transport, client=fake_client
    )


@pytest.fixture
def write_plugin(tmp_path) -> Callable[[str, str], None]:
    def _write(relative: str, source: str) -> None:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")

    return _write
