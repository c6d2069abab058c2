from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping

from .errors import InvalidTicketTransitionError


class StateType(str, Enum):
    """Classes of workflow states that drive close and pending bookkeeping."""

    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class TicketState:
    """A named workflow state flagged with its class."""

    name: str
    state_type: StateType

    @property
    def is_pending(self) -> bool:
        return self.state_type is StateType.PENDING

    @property
    def is_closed(self) -> bool:
        return self.state_type is StateType.CLOSED


DEFAULT_STATES: tuple[TicketState, ...] = (
    TicketState("new", StateType.OPEN),
    TicketState("open", StateType.OPEN),
    TicketState("pending reminder", StateType.PENDING),
    TicketState("pending close", StateType.PENDING),
    TicketState("closed", StateType.CLOSED),
    TicketState("merged", StateType.CLOSED),
)


class TicketStateCatalog:
    """Registry of known ticket states and validation of state changes."""

    def __init__(self, states: Iterable[TicketState] | None = None, *, initial: str = "new") -> None:
        self._states: dict[str, TicketState] = {}
        for state in states if states is not None else DEFAULT_STATES:
            self.register(state)
        if initial not in self._states:
            raise ValueError(f"Initial state {initial!r} is not registered")
        self._initial = initial

    def register(self, state: TicketState) -> None:
        self._states[state.name] = state

    def states(self) -> Mapping[str, TicketState]:
        return dict(self._states)

    def initial_state(self) -> TicketState:
        return self._states[self._initial]

    def lookup(self, name: str) -> TicketState:
        state = self._states.get(name)
        if state is None:
            raise InvalidTicketTransitionError(f"Unknown ticket state: {name!r}")
        return state

    def assert_transition(self, target: str, pending_time: datetime | None) -> TicketState:
        """Return the target state, or raise when the pending time does not fit it."""

        state = self.lookup(target)
        if state.is_pending and pending_time is None:
            raise InvalidTicketTransitionError(f"State {target!r} requires a pending time")
        if not state.is_pending and pending_time is not None:
            raise InvalidTicketTransitionError(f"State {target!r} does not accept a pending time")
        return state
