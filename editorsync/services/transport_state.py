"""Change transport state machine with transition validation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"  # push stream requested, not yet open
    CONNECTED = "connected"  # push stream open
    POLLING = "polling"


VALID_TRANSITIONS: dict[TransportState, set[TransportState]] = {
    TransportState.DISCONNECTED: {TransportState.CONNECTING, TransportState.POLLING},
    TransportState.CONNECTING: {
        TransportState.CONNECTED,
        TransportState.POLLING,
        TransportState.DISCONNECTED,
    },
    TransportState.CONNECTED: {TransportState.POLLING, TransportState.DISCONNECTED},
    # No automatic re-promotion to push: only via DISCONNECTED (reconnect)
    TransportState.POLLING: {TransportState.DISCONNECTED},
}


class TransportStateMachine:
    """Tracks which channel a ChangeTransport is using."""

    def __init__(self, name: str = "transport"):
        self._name = name
        self._state = TransportState.DISCONNECTED
        self._since = datetime.now(timezone.utc)

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def since(self) -> datetime:
        return self._since

    def transition(self, new_state: TransportState) -> bool:
        """Transition to new state. Returns True if valid, False if rejected."""
        if new_state == self._state:
            return True  # No-op

        valid = VALID_TRANSITIONS.get(self._state, set())
        if new_state not in valid:
            logger.warning(
                "Invalid %s state transition: %s -> %s (valid: %s)",
                self._name, self._state.value, new_state.value,
                sorted(s.value for s in valid),
            )
            return False

        old_state = self._state
        self._state = new_state
        self._since = datetime.now(timezone.utc)
        logger.info("%s state: %s -> %s", self._name, old_state.value, new_state.value)
        return True

    def to_dict(self) -> dict:
        return {
            "state": self._state.value,
            "since": self._since.isoformat(),
        }
