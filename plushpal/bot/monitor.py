"""
Passive observer of peer-connection and ICE connectivity states.

Transitions are recorded in the order they occur, consecutive duplicates are
dropped, and failures are reported but never acted upon.
"""

import logging
import time
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

from aiortc import RTCPeerConnection

from plushpal.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

HISTORY_SIZE = 50
UNHEALTHY_STATES = ("failed", "disconnected")


class ConnectionMonitor:
    """Tracks connectionState and iceConnectionState of the current peer connection."""

    def __init__(self, history_size: int = HISTORY_SIZE):
        self.connection_state = "new"
        self.ice_state = "new"
        self.transitions: Deque[Tuple[float, str, str]] = deque(maxlen=history_size)

    def attach(self, pc: RTCPeerConnection) -> None:
        """Start observing a peer connection, resetting the current states."""
        self.connection_state = "new"
        self.ice_state = "new"

        def on_connectionstatechange():
            self.record("connection", pc.connectionState)

        def on_iceconnectionstatechange():
            self.record("ice", pc.iceConnectionState)

        pc.on("connectionstatechange", on_connectionstatechange)
        pc.on("iceconnectionstatechange", on_iceconnectionstatechange)

    def record(self, kind: str, state: str) -> bool:
        """
        Record a state transition.

        Args:
            kind: "connection" or "ice"
            state: The new state value

        Returns:
            bool: True if the transition was recorded, False for a consecutive duplicate
        """
        current = self.connection_state if kind == "connection" else self.ice_state
        if state == current:
            return False

        if kind == "connection":
            self.connection_state = state
        else:
            self.ice_state = state
        self.transitions.append((time.time(), kind, state))

        label = "Connection" if kind == "connection" else "ICE connection"
        if state in UNHEALTHY_STATES:
            logger.warning(f"{label} state: {state} (no automatic recovery is attempted)")
        else:
            logger.info(f"{label} state: {state}")
        return True

    @property
    def healthy(self) -> bool:
        return (self.connection_state not in UNHEALTHY_STATES
                and self.ice_state not in UNHEALTHY_STATES)

    def last_transition(self) -> Optional[Tuple[float, str, str]]:
        return self.transitions[-1] if self.transitions else None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "connection_state": self.connection_state,
            "ice_state": self.ice_state,
            "healthy": self.healthy,
            "transitions": [
                {"at": at, "kind": kind, "state": state}
                for at, kind, state in self.transitions
            ],
        }
