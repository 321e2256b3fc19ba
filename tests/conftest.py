"""Pytest configuration and fixtures."""

import asyncio

import pytest

from extreload.reload import ChannelClosedError


class FakeClock:
    """Manually advanced monotonic clock with a matching sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeChannel:
    """Records sent text; raises like a real socket once closed."""

    def __init__(self, is_open: bool = True, fail_send: bool = False):
        self.is_open = is_open
        self.fail_send = fail_send
        self.sent: list[str] = []

    async def send(self, text: str) -> None:
        if self.fail_send or not self.is_open:
            raise ChannelClosedError("socket closed")
        self.sent.append(text)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel_factory() -> type[FakeChannel]:
    return FakeChannel


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="run live tests that bind a real local port",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as binding real sockets (deselect with '-m \"not live\"')",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)
