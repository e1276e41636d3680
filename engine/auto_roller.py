"""Scripted roll actor: answers roll requests with real rolls."""

from __future__ import annotations

import logging
import random
from typing import Callable

from engine.dice import parse_expression, roll_dice
from engine.rolls import RollCoordinator
from engine.scheduler import Scheduler
from models.rolls import RollRequest, RollResult

logger = logging.getLogger(__name__)


def roll_request(request: RollRequest, rng: random.Random | None = None) -> RollResult:
    """Roll what a request asks for.

    ``natural`` is only filled in for single-d20 rolls.

    Raises:
        InvalidExpression: If the request carries a malformed expression.
    """
    count, sides, _ = parse_expression(request.expression)
    dice = roll_dice(request.expression, request.modifier, rng)
    natural = dice.rolls[0] if (count, sides) == (1, 20) else None
    return RollResult(id=request.id, total=dice.total, rolls=dice.rolls, natural=natural)


class AutoRoller:
    """Plays the roll actor without a human.

    Either call ``roll_pending`` on demand, or ``attach`` to answer every
    request. Attached answers go through the scheduler (when given) so the
    engine sees them as a later event, like a human click.
    """

    def __init__(
        self,
        rolls: RollCoordinator,
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
        delay: float = 0.0,
    ) -> None:
        self._rolls = rolls
        self._rng = rng or random.Random()
        self._scheduler = scheduler
        self._delay = delay
        self._detach: Callable[[], None] | None = None

    def roll_pending(self) -> RollResult | None:
        """Answer the coordinator's pending request, if any."""
        request = self._rolls.pending
        if request is None:
            return None
        return self._answer(request)

    def attach(self) -> None:
        if self._detach is None:
            self._detach = self._rolls.subscribe_requests(self._on_request)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def _on_request(self, request: RollRequest) -> None:
        if self._scheduler is None:
            self._answer(request)
            return
        self._scheduler.call_later(self._delay, lambda: self._answer_if_pending(request))

    def _answer_if_pending(self, request: RollRequest) -> None:
        pending = self._rolls.pending
        if pending is not None and pending.id == request.id:
            self._answer(request)

    def _answer(self, request: RollRequest) -> RollResult:
        result = roll_request(request, self._rng)
        logger.debug("%s: rolled %s%+d -> %d", request.label, request.expression, request.modifier, result.total)
        self._rolls.resolve_roll(result)
        return result
