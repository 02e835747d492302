"""
Ephemeral credential exchange with the OpenAI Realtime sessions endpoint.

The long-lived API key never leaves this module: it is traded for a
short-lived client secret that authorizes exactly one WebRTC session.
"""

import asyncio
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from plushpal.config.constants import LOGGER_NAME, REALTIME_SESSIONS_URL
from plushpal.exceptions import AuthError
from plushpal.models.session import Credential, RealtimeSessionResponse

logger = logging.getLogger(LOGGER_NAME)


class CredentialBroker:
    """
    Obtains short-lived session credentials from the Realtime API.

    One outbound request per call, no retries: any failure is surfaced to the
    caller as an AuthError.
    """

    def __init__(self, api_key: str, sessions_url: str = REALTIME_SESSIONS_URL,
                 timeout: Optional[float] = None):
        self._api_key = api_key
        self.sessions_url = sessions_url
        self.timeout = timeout

    async def acquire_credential(self, model: str, voice: str) -> Credential:
        """
        Request an ephemeral credential for a model/voice pair.

        Args:
            model: Realtime model the session will use
            voice: Voice the model should speak with

        Returns:
            Credential: The ephemeral client secret

        Raises:
            AuthError: On network failure, non-200 status, or malformed response body
        """
        logger.info(f"Requesting ephemeral credential for model: {model}, voice: {voice}")
        credential = await asyncio.to_thread(self._request_credential, model, voice)
        logger.info("Ephemeral credential acquired")
        return credential

    def _request_credential(self, model: str, voice: str) -> Credential:
        try:
            response = requests.post(
                self.sessions_url,
                json={"model": model, "voice": voice},
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Credential request failed: {e}")
            raise AuthError(f"Credential request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Credential request returned status {response.status_code}")
            raise AuthError(
                f"Request failed with status code {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )

        try:
            session = RealtimeSessionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Credential response did not contain client_secret.value")
            raise AuthError(
                "Failed to parse response",
                status=response.status_code,
                body=response.text,
            ) from e

        return Credential(
            value=session.client_secret.value,
            expires_at=session.client_secret.expires_at,
        )
