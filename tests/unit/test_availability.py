"""
Unit tests for the availability aggregator.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from internal.domain.catalog import Variant
from internal.domain.errors import CatalogQueryError
from internal.usecase.availability import (
    AvailabilityAggregator,
    is_product_available,
    is_variant_available,
)
from tests.fakes import make_product


@pytest.mark.parametrize(
    "manage_inventory, allow_backorder, quantity, expected",
    [
        (False, False, 0, True),
        (True, True, 0, True),
        (True, False, 0, False),
        (True, False, 5, True),
    ],
)
def test_variant_availability_rule(manage_inventory, allow_backorder, quantity, expected):
    variant = Variant(id="v", manage_inventory=manage_inventory, allow_backorder=allow_backorder)

    assert is_variant_available(variant, quantity) is expected


def test_product_available_if_any_variant_is():
    product = make_product(
        "p",
        variants=[Variant(id="a"), Variant(id="b", manage_inventory=False)],
    )

    assert is_product_available(product, {"a": 0, "b": 0}) is True
    assert is_product_available(make_product("q", variants=[]), {}) is False


class TestAvailabilityAggregator:
    """Tests for AvailabilityAggregator."""

    @pytest.mark.asyncio
    async def test_single_batched_call(self):
        catalog = MagicMock()
        catalog.get_variant_availability = AsyncMock(return_value={"v1": 4})
        aggregator = AvailabilityAggregator(catalog)

        result = await aggregator.resolve_availability(["v1", "v2", "v1"], "sc_public")

        assert result == {"v1": 4, "v2": 0}
        catalog.get_variant_availability.assert_awaited_once_with(["v1", "v2"], "sc_public")

    @pytest.mark.asyncio
    async def test_failure_reports_zero_for_every_variant(self):
        catalog = MagicMock()
        catalog.get_variant_availability = AsyncMock(
            side_effect=CatalogQueryError("get_variant_availability", "timeout")
        )
        aggregator = AvailabilityAggregator(catalog)

        result = await aggregator.resolve_availability(["v1", "v2"], "sc_public")

        assert result == {"v1": 0, "v2": 0}

    @pytest.mark.asyncio
    async def test_missing_channel_reports_zero_without_query(self):
        catalog = MagicMock()
        catalog.get_variant_availability = AsyncMock()
        aggregator = AvailabilityAggregator(catalog)

        result = await aggregator.resolve_availability(["v1"], None)

        assert result == {"v1": 0}
        catalog.get_variant_availability.assert_not_called()

    @pytest.mark.asyncio
    async def test_negative_quantities_clamped(self):
        catalog = MagicMock()
        catalog.get_variant_availability = AsyncMock(return_value={"v1": -2})

        result = await AvailabilityAggregator(catalog).resolve_availability(["v1"], "sc")

        assert result == {"v1": 0}
