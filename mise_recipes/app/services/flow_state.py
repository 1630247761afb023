import logging
from typing import Callable, Dict, FrozenSet, Generic, List, TypeVar

logger = logging.getLogger(__name__)

S = TypeVar("S")


class FlowStateError(RuntimeError):
    """Raised when a flow is asked to do something its current state does not allow."""


class ObservableFlow(Generic[S]):
    """Minimal state machine with poll (``state``) and push (``subscribe``) access."""

    transitions: Dict[S, FrozenSet[S]] = {}

    def __init__(self, initial: S):
        self._state = initial
        self._listeners: List[Callable[["ObservableFlow[S]"], None]] = []

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, listener: Callable[["ObservableFlow[S]"], None]) -> Callable[[], None]:
        """Register a listener called after every transition. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _require(self, *allowed: S) -> None:
        if self._state not in allowed:
            raise FlowStateError(f"{type(self).__name__} cannot do that while {getattr(self._state, 'value', self._state)}")

    def _transition(self, new_state: S) -> None:
        if new_state not in self.transitions.get(self._state, frozenset()):
            raise FlowStateError(
                f"{type(self).__name__}: illegal transition "
                f"{getattr(self._state, 'value', self._state)} -> {getattr(new_state, 'value', new_state)}"
            )
        logger.debug("%s: %s -> %s", type(self).__name__, self._state, new_state)
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # noqa: BLE001
                logger.exception("%s listener failed", type(self).__name__)
