"""
SDP offer/answer negotiation with the Realtime API signaling endpoint.

A SessionNegotiator is bound to a single RTCPeerConnection and enforces the
create -> negotiate -> apply ordering exactly once per connection attempt.
"""

import asyncio
import logging
from typing import Optional

import requests
from aiortc import MediaStreamTrack, RTCPeerConnection
from aiortc.exceptions import InvalidStateError

from plushpal.config.constants import LOGGER_NAME, REALTIME_URL, SDP_CONTENT_TYPE
from plushpal.exceptions import NegotiationError, SequencingError
from plushpal.models.session import Credential, OfferCapabilities, SessionDescription

logger = logging.getLogger(LOGGER_NAME)


class SessionNegotiator:
    """
    Builds the local offer, exchanges it for the remote answer and applies it.

    The data channel must be created on the peer connection before
    create_offer() so that it is included in the offer.
    """

    def __init__(self, peer_connection: RTCPeerConnection, model: str,
                 realtime_url: str = REALTIME_URL, timeout: Optional[float] = None):
        self._pc = peer_connection
        self.model = model
        self.realtime_url = realtime_url
        self.timeout = timeout
        self._offer: Optional[SessionDescription] = None
        self._answer: Optional[SessionDescription] = None
        self._negotiating = False
        self._answer_applied = False

    @property
    def offer(self) -> Optional[SessionDescription]:
        return self._offer

    @property
    def answer_applied(self) -> bool:
        return self._answer_applied

    async def create_offer(self, capabilities: OfferCapabilities = OfferCapabilities(),
                           audio_track: Optional[MediaStreamTrack] = None) -> SessionDescription:
        """
        Create the local offer and set it as the local description.

        Args:
            capabilities: Declared media capabilities
            audio_track: Outbound audio track; when omitted an audio transceiver
                with the requested direction is added instead

        Returns:
            SessionDescription: The local offer, including gathered ICE candidates

        Raises:
            SequencingError: If an offer was already created on this connection
        """
        if self._offer is not None:
            raise SequencingError("Offer already created for this connection")

        if audio_track is not None and capabilities.audio_direction == "sendrecv":
            self._pc.addTrack(audio_track)
        else:
            self._pc.addTransceiver("audio", direction=capabilities.audio_direction)

        offer = await self._pc.createOffer()
        # aiortc gathers ICE candidates here, so localDescription carries them
        await self._pc.setLocalDescription(offer)
        self._offer = SessionDescription.from_rtc(self._pc.localDescription)
        logger.info("Local offer created")
        logger.debug(f"Offer SDP: {self._offer.sdp}")
        return self._offer

    async def negotiate(self, offer: SessionDescription, credential: Credential) -> SessionDescription:
        """
        Send the offer to the signaling endpoint and return the remote answer.

        Args:
            offer: The offer returned by create_offer()
            credential: Ephemeral credential authorizing this session

        Returns:
            SessionDescription: The remote answer

        Raises:
            SequencingError: If called before create_offer(), with a different offer,
                concurrently, or after an answer was already received
            NegotiationError: On network failure, non-success status or malformed SDP
        """
        if self._offer is None:
            raise SequencingError("Cannot negotiate before an offer has been created")
        if offer != self._offer:
            raise SequencingError("Offer does not belong to this connection attempt")
        if self._negotiating:
            raise SequencingError("Negotiation already in progress")
        if self._answer is not None:
            raise SequencingError("Negotiation already completed for this connection")

        self._negotiating = True
        try:
            logger.info(f"Sending offer to {self.realtime_url} for model: {self.model}")
            answer = await asyncio.to_thread(self._post_offer, offer, credential)
        finally:
            self._negotiating = False

        self._answer = answer
        logger.info("Received answer from Realtime API")
        logger.debug(f"Answer SDP: {answer.sdp}")
        return answer

    def _post_offer(self, offer: SessionDescription, credential: Credential) -> SessionDescription:
        try:
            response = requests.post(
                self.realtime_url,
                params={"model": self.model},
                data=offer.sdp.encode("utf-8"),
                headers={
                    "Authorization": credential.bearer(),
                    "Content-Type": SDP_CONTENT_TYPE,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Signaling request failed: {e}")
            raise NegotiationError(f"Signaling request failed: {e}") from e

        if not response.ok:
            logger.error(f"Signaling endpoint returned status {response.status_code}")
            raise NegotiationError(
                f"HTTP error! status: {response.status_code}",
                status=response.status_code,
                body=response.text,
            )

        sdp = response.text
        if not sdp or not sdp.lstrip().startswith("v="):
            raise NegotiationError("Malformed SDP answer", status=response.status_code, body=sdp)

        return SessionDescription(type="answer", sdp=sdp)

    async def apply_answer(self, answer: SessionDescription) -> None:
        """
        Commit the remote answer to the peer connection. Allowed exactly once.

        Raises:
            SequencingError: If no offer exists yet or an answer was already applied
            NegotiationError: If the peer connection rejects the answer
        """
        if self._offer is None:
            raise SequencingError("Cannot apply an answer before an offer exists")
        if self._answer_applied:
            raise SequencingError("Remote answer already applied to this connection")
        if answer.type != "answer":
            raise SequencingError(f"Expected an answer, got {answer.type}")

        # Mark before awaiting so a concurrent second call is rejected too
        self._answer_applied = True
        try:
            await self._pc.setRemoteDescription(answer.to_rtc())
        except (ValueError, InvalidStateError) as e:
            logger.error(f"Remote answer rejected: {e}")
            raise NegotiationError(f"Malformed SDP answer: {e}") from e
        logger.info("Remote answer applied")
