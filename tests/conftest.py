from __future__ import annotations

import random

import pytest

from liveauction.broadcast import RecordingPublisher
from liveauction.engine import AssignmentEngine
from liveauction.media import LocalMediaStore
from liveauction.persistence import AuctionStore
from liveauction.tenancy import StaticRegistrationDirectory, TenantScope

from tests.factories import scope_for


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store(tmp_path) -> AuctionStore:
    return AuctionStore(tmp_path / "auction.sqlite")


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def media(tmp_path) -> LocalMediaStore:
    return LocalMediaStore(tmp_path / "media")


@pytest.fixture
def engine(store, publisher, media) -> AssignmentEngine:
    return AssignmentEngine(
        store,
        publisher,
        media=media,
        registrations=StaticRegistrationDirectory({"join-t1": "t1"}),
        rng=random.Random(7),
    )


@pytest.fixture
def t1() -> TenantScope:
    return scope_for("t1")


@pytest.fixture
def t2() -> TenantScope:
    return scope_for("t2")
