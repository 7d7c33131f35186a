"""Delivery gateway: composes the outbound email and sends it."""

import base64
from email.message import EmailMessage
from typing import Any, Dict, Optional

from murmur.app.core.logging import get_logger
from murmur.app.exceptions import CredentialError, DeliveryAuthError, TransportError
from murmur.app.services.delivery.credentials import CredentialCache
from murmur.app.services.delivery.transport import MessageTransport

logger = get_logger(__name__)

DEFAULT_SUBJECT = "Anonymous Feedback"


def encode_envelope(message: EmailMessage) -> str:
    """Unpadded base64url encoding of the serialized message."""
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


class DeliveryGateway:
    """Sends transformed messages to the fixed recipient.

    A send that is rejected as unauthorized drops the cached credential and
    is retried exactly once with a freshly issued one.

    Args:
        cache: Credential cache for the transport
        transport: Mail transport
        recipient: Destination address
        subject: Subject line of every message
    """

    def __init__(
        self,
        cache: CredentialCache,
        transport: MessageTransport,
        recipient: str,
        subject: str = DEFAULT_SUBJECT,
    ):
        self.cache = cache
        self.transport = transport
        self.recipient = recipient
        self.subject = subject

    def compose(self, body: str) -> EmailMessage:
        message = EmailMessage()
        message["To"] = self.recipient
        message["Subject"] = self.subject
        message.set_content(body, charset="utf-8")
        return message

    async def send(self, body: str) -> Optional[str]:
        """Deliver body to the recipient.

        Returns:
            Transport message id, if reported

        Raises:
            CredentialError: If no access token can be issued
            DeliveryAuthError: If a freshly issued token is rejected as well
            TransportError: On any other rejected send
        """
        raw = encode_envelope(self.compose(body))

        for attempt in range(2):
            token = await self.cache.get()
            try:
                message_id = await self.transport.send(raw, token)
            except TransportError as e:
                if not e.unauthorized:
                    raise
                self.cache.invalidate()
                if attempt == 0:
                    logger.warning("Transport rejected credential, retrying with a fresh token")
                    continue
                raise DeliveryAuthError(
                    "Transport rejected a freshly issued credential"
                ) from e
            logger.info("Message handed to transport", extra={"provider": self.transport.name})
            return message_id

    async def credential_status(self) -> Dict[str, Any]:
        """Whether a token can be obtained, without exposing it."""
        status: Dict[str, Any] = {
            "configured": self.cache.issuer.configured,
            "recipientConfigured": bool(self.recipient),
            "tokenAvailable": False,
            "expiresAt": None,
            "error": None,
        }
        try:
            await self.cache.get()
        except CredentialError as e:
            status["error"] = e.message
            return status
        cached = self.cache.cached
        status["tokenAvailable"] = True
        status["expiresAt"] = int(cached.expires_at) if cached else None
        return status
