"""
Sales Channel Resolver.

Finds the public storefront channel used for availability and visibility,
and the internal-operations channel used to flag internal-only products.
"""
from dataclasses import dataclass
from typing import Optional

from internal.domain.catalog import SalesChannel
from internal.infrastructure.metrics import RESOLUTION_FALLBACKS_TOTAL
from internal.usecase.protocols import CatalogRepositoryProtocol
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


PREFERRED_PUBLIC_CHANNEL_NAMES = ("Default Sales Channel", "Public Store")
INTERNAL_CHANNEL_MARKERS = ("internal", "operation")


@dataclass(frozen=True)
class ChannelContext:
    """Resolved sales channels for one sync invocation."""

    public_channel_id: Optional[str]
    internal_channel_id: Optional[str]
    # False when the channel lookup failed and no channel is configured
    resolved: bool = True


def pick_public_channel(channels: list[SalesChannel]) -> Optional[str]:
    """
    Pick the public channel from a channel list.

    Args:
        channels: Channels in catalog order.

    Returns:
        Channel named like a default storefront, else the first channel.
    """
    if not channels:
        return None
    for channel in channels:
        if channel.name in PREFERRED_PUBLIC_CHANNEL_NAMES:
            return channel.id
    return channels[0].id


def pick_internal_channel(channels: list[SalesChannel]) -> Optional[str]:
    """
    Pick the internal-operations channel from a channel list.

    Args:
        channels: Channels in catalog order.

    Returns:
        First channel whose name mentions internal operations, if any.
    """
    for channel in channels:
        name = channel.name.lower()
        if any(marker in name for marker in INTERNAL_CHANNEL_MARKERS):
            return channel.id
    return None


class SalesChannelResolver:
    """Resolves the public and internal sales channels from the catalog."""

    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        configured_public_channel_id: Optional[str] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            catalog: Catalog repository.
            configured_public_channel_id: Explicit public channel; skips
                the name-based lookup when set.
        """
        self._catalog = catalog
        self._configured_public_channel_id = configured_public_channel_id

    async def resolve(self) -> ChannelContext:
        """
        Resolve both channels. Lookup failures fall back to the configured
        public channel and no internal channel.

        Returns:
            ChannelContext for one invocation.
        """
        try:
            channels = await self._catalog.list_sales_channels()
        except Exception as e:
            RESOLUTION_FALLBACKS_TOTAL.labels(resolver="sales_channel").inc()
            logger.error(
                "Sales channel lookup failed, using configured channel",
                configured_channel_id=self._configured_public_channel_id,
                error=str(e),
            )
            return ChannelContext(
                public_channel_id=self._configured_public_channel_id,
                internal_channel_id=None,
                resolved=self._configured_public_channel_id is not None,
            )

        public_id = self._configured_public_channel_id or pick_public_channel(channels)
        if public_id is None:
            logger.warning("No sales channels found in the catalog")

        return ChannelContext(
            public_channel_id=public_id,
            internal_channel_id=pick_internal_channel(channels),
        )
