"""
Circuit breaker guarding the Snap API. After ``failure_threshold``
consecutive failures the gateway is skipped until ``recovery_timeout``
seconds have passed; then a single probe request is let through and its
result decides whether the circuit closes again or reopens.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from canteen.metrics import CIRCUIT_STATE

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_GAUGE = {CircuitState.CLOSED: 0, CircuitState.HALF_OPEN: 1, CircuitState.OPEN: 2}


@dataclass
class CircuitBreaker:
    failure_threshold: int
    recovery_timeout: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    consecutive_failures: int = field(default=0, init=False)
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False, repr=False)
    _opened_at: float = field(default=0.0, init=False, repr=False)
    _probe_in_flight: bool = field(default=False, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self.clock() - self._opened_at >= self.recovery_timeout:
            self._move_to(CircuitState.HALF_OPEN)
        return self._state

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        self.consecutive_failures = 0
        self._probe_in_flight = False
        if self._state != CircuitState.CLOSED:
            self._move_to(CircuitState.CLOSED)

    def abandon_probe(self) -> None:
        """Release the half-open probe slot without recording an outcome."""
        self._probe_in_flight = False

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        probe_failed = self._state == CircuitState.HALF_OPEN
        self._probe_in_flight = False
        if probe_failed or (
            self._state == CircuitState.CLOSED and self.consecutive_failures >= self.failure_threshold
        ):
            self._opened_at = self.clock()
            self._move_to(CircuitState.OPEN)

    def _move_to(self, new_state: CircuitState) -> None:
        previous, self._state = self._state, new_state
        CIRCUIT_STATE.set(_GAUGE[new_state])
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Payment gateway circuit %s -> %s",
            previous.value,
            new_state.value,
            extra={"consecutive_failures": self.consecutive_failures},
        )
