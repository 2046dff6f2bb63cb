"""Pytest bootstrap configuration.

Settings are read at import time, so the environment is prepared before any
application module is collected.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./settlement-test.db")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("WEBHOOK__SECRETS", '{"acme": "whsec_acme_test"}')

from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from tests.fakes import FakeClock, InMemoryState, make_uow_factory  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def state():
    return InMemoryState()


@pytest.fixture
def uow_factory(state):
    return make_uow_factory(state)


@pytest.fixture
def pricing(clock):
    """50.00 x 2 + 8.00 tax + 5.00 shipping = 113.00"""
    from domain.order.entity import PricingSnapshot

    return PricingSnapshot(
        currency="USD",
        unit_prices={"sku-1": Decimal("50.00")},
        tax=Decimal("8.00"),
        shipping=Decimal("5.00"),
        captured_at=clock() - timedelta(minutes=1),
    )
