"""
Failover code gateway - Implements the CodeIssuanceGateway port.

Generates the human-readable code, then walks an ordered list of delivery
strategies until one accepts the message. Failure of every strategy is
reported as one DeliveryFailed.

In inline mode a reporter callback attaches the code to its record before
the first send attempt, standing in for the relay's HTTP callback. Without
a reporter the code must arrive through POST /gateway/set-code.
"""

import logging
import secrets
from collections.abc import Callable, Sequence
from uuid import UUID

from src.domain.exceptions import DeliveryFailed, IdentityError
from src.domain.ports import DeliveryRequest

from .base import CodeMessage, DeliveryError, DeliveryStrategy

logger = logging.getLogger(__name__)

CodeReporter = Callable[[UUID, str], None]


def generate_code(length: int = 6) -> str:
    """
    Cryptographically secure numeric code.

    Returns a string to preserve leading zeros.
    """
    return "".join(secrets.choice("0123456789") for _ in range(length))


class FailoverCodeGateway:
    """Tries delivery strategies in order; first success wins."""

    def __init__(
        self,
        strategies: Sequence[DeliveryStrategy],
        reporter: CodeReporter | None = None,
        code_length: int = 6,
    ) -> None:
        self.strategies = list(strategies)
        self.reporter = reporter
        self.code_length = code_length

    def request_delivery(self, request: DeliveryRequest) -> None:
        candidates = [s for s in self.strategies if s.supports(request.channel)]
        if not candidates:
            logger.error("No delivery strategy supports channel %s", request.channel.value)
            raise DeliveryFailed()

        code = generate_code(self.code_length)
        if self.reporter is not None:
            try:
                self.reporter(request.record_id, code)
            except IdentityError as e:
                logger.error("Could not report code for record %s: %s", request.record_id, e.detail)
                raise DeliveryFailed() from e

        message = CodeMessage(request=request, code=code)
        for strategy in candidates:
            try:
                strategy.deliver(message)
                return
            except DeliveryError as e:
                logger.warning("Delivery strategy %s failed: %s", strategy.name, e)

        logger.error(
            "All %d delivery strategies failed for record %s", len(candidates), request.record_id
        )
        raise DeliveryFailed()
