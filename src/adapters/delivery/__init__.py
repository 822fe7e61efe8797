"""Delivery adapters - Code transports and the failover gateway."""

from .base import CodeMessage, DeliveryError, DeliveryStrategy
from .console import ConsoleDeliveryStrategy
from .gateway import FailoverCodeGateway, generate_code
from .smtp import SmtpDeliveryStrategy

__all__ = [
    "CodeMessage",
    "ConsoleDeliveryStrategy",
    "DeliveryError",
    "DeliveryStrategy",
    "FailoverCodeGateway",
    "SmtpDeliveryStrategy",
    "generate_code",
]
