from murmur.app.services.delivery.credentials import (
    CredentialCache,
    CredentialIssuer,
    GoogleOAuthIssuer,
    IssuedCredential,
)
from murmur.app.services.delivery.gateway import DeliveryGateway, encode_envelope
from murmur.app.services.delivery.transport import GmailTransport, MessageTransport

__all__ = [
    "CredentialCache",
    "CredentialIssuer",
    "DeliveryGateway",
    "GmailTransport",
    "GoogleOAuthIssuer",
    "IssuedCredential",
    "MessageTransport",
    "encode_envelope",
]
