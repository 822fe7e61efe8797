"""Delivery strategy interface shared by all transports."""

from dataclasses import dataclass
from typing import Protocol

from src.domain.ports import ChallengeKind, Channel, DeliveryRequest


class DeliveryError(Exception):
    """One strategy could not deliver. The gateway moves on to the next."""

    pass


@dataclass(frozen=True)
class CodeMessage:
    """A delivery request together with the code generated for it."""

    request: DeliveryRequest
    code: str


SUBJECTS = {
    ChallengeKind.EMAIL_VERIFICATION: "Email Verification Code",
    ChallengeKind.MOBILE_VERIFICATION: "Mobile Verification Code",
    ChallengeKind.PASSWORD_RESET: "Password Reset Code",
    ChallengeKind.USERNAME_RECOVERY: "Username Recovery Code",
}


def render_text(message: CodeMessage) -> str:
    """Plain-text body used by every transport."""
    expires = message.request.expires_at.strftime("%Y-%m-%d %H:%M UTC")
    return (
        f"Your {SUBJECTS[message.request.kind].lower()} is: {message.code}\n"
        f"This code expires at {expires}.\n"
        "If you did not request this code, you can ignore this message."
    )


class DeliveryStrategy(Protocol):
    """Port for a single transport in the failover chain."""

    name: str

    def supports(self, channel: Channel) -> bool: ...

    def deliver(self, message: CodeMessage) -> None:
        """
        Raises:
            DeliveryError: If the transport did not accept the message
        """
        ...
