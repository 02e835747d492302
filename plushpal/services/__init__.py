"""
Client implementations for the Realtime API HTTP endpoints.

Key components:
- CredentialBroker: Trades the long-lived API key for an ephemeral session credential.
- SessionNegotiator: Exchanges the local SDP offer for the remote answer and applies it
  to the peer connection.

Both make exactly one request per operation and never retry; failures surface as
AuthError or NegotiationError.
"""

from plushpal.services.credentials import CredentialBroker
from plushpal.services.signaling import SessionNegotiator

__all__ = ["CredentialBroker", "SessionNegotiator"]
