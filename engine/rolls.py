"""Single-slot roll request/result channel between the engine and the roll actor."""

from __future__ import annotations

import logging
from typing import Callable

from models.rolls import RollRequest, RollResult

logger = logging.getLogger(__name__)

ResultListener = Callable[[RollResult], None]
RequestListener = Callable[[RollRequest], None]


class RollCoordinator:
    """Publishes roll requests and delivers roll results.

    Holds at most one request. A new request overwrites an unconsumed one;
    keeping a single outstanding request is the caller's job. Results are
    not buffered: a result published with nobody listening is lost.
    """

    def __init__(self) -> None:
        self._pending: RollRequest | None = None
        self._result_listeners: list[ResultListener] = []
        self._request_listeners: list[RequestListener] = []

    @property
    def pending(self) -> RollRequest | None:
        return self._pending

    def request_roll(self, request: RollRequest) -> None:
        """Publish a request to the roll actor."""
        self._pending = request
        for listener in list(self._request_listeners):
            listener(request)

    def resolve_roll(self, result: RollResult) -> None:
        """Clear the slot, then hand the result to every subscriber in order.

        The slot is cleared first so a subscriber may publish a follow-up
        request from inside its callback.
        """
        self._pending = None
        logger.debug("Publishing roll result %s (total %d)", result.id, result.total)
        for listener in list(self._result_listeners):
            listener(result)

    def clear_pending(self) -> None:
        self._pending = None

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Listen for results. Returns a function that stops listening."""
        self._result_listeners.append(listener)
        return lambda: _discard(self._result_listeners, listener)

    def subscribe_requests(self, listener: RequestListener) -> Callable[[], None]:
        """Listen for requests. Returns a function that stops listening."""
        self._request_listeners.append(listener)
        return lambda: _discard(self._request_listeners, listener)


def _discard(listeners: list, listener: Callable) -> None:
    if listener in listeners:
        listeners.remove(listener)
