"""
Console delivery strategy - Implements the DeliveryStrategy protocol.

Logs codes instead of sending them, for development and demo purposes.
"""

import logging

from src.domain.ports import Channel

from .base import CodeMessage

logger = logging.getLogger(__name__)


class ConsoleDeliveryStrategy:
    """
    Implements DeliveryStrategy protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Handles every channel, so it works as the last entry of a failover list.
    """

    name = "console"

    def supports(self, channel: Channel) -> bool:
        return True

    def deliver(self, message: CodeMessage) -> None:
        """
        Log the code at INFO level (simulates delivery).

        Args:
            message: Code, recipient and record to deliver for
        """
        logger.info(
            "[%s] %s: %s Code: %s Record: %s",
            message.request.kind.value.upper(),
            message.request.channel.value,
            message.request.address,
            message.code,
            message.request.record_id,
        )
