from datetime import datetime

import pytest

from trendscope.schemas.providers import AlphaTokenMarket
from trendscope.tests.fakes import make_token


@pytest.fixture
def alpha_entry():
    """Build listing tokens with (optional) market fields."""

    def _build(symbol: str, price: float = 0.0, **market) -> AlphaTokenMarket:
        return AlphaTokenMarket(token=make_token(symbol), price=price, **market)

    return _build


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2026, 10, 18, 14, 5)
