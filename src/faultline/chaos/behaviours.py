# src/faultline/chaos/behaviours.py
"""Behaviours: factories of response-overriding filters.

A behaviour is a frozen value. as_filter() yields a Filter that either
replaces the downstream response entirely (ReturnStatus, ThrowException) or
calls downstream and alters the request/response on the way through
(Latency, SnipBody, SnipRequestBody, NoBody). Sleeping and raising are the
intended effects of a behaviour, not engine errors.

Every response a behaviour alters carries an x-faultline-chaos header that
names the injected fault.
"""

from __future__ import annotations

import random as random_module
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from faultline.chaos.errors import ChaosFault
from faultline.core.http import Filter, Handler, Request, Response

if TYPE_CHECKING:
    from faultline.chaos.stages import Stage
    from faultline.chaos.triggers import Trigger

CHAOS_HEADER = "x-faultline-chaos"


class Behaviour:
    """Base class for all behaviour variants."""

    __slots__ = ()

    def as_filter(self) -> Filter:
        raise NotImplementedError

    def applied_when(self, trigger: Trigger) -> Stage:
        """Bind this behaviour to a trigger, forming a leaf stage."""
        from faultline.chaos.stages import Triggered

        return Triggered(trigger=trigger, behaviour=self)


@dataclass(frozen=True, slots=True)
class ReturnStatus(Behaviour):
    """Replace the response with an empty one carrying status."""

    status: int

    def as_filter(self) -> Filter:
        status = self.status

        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                return Response(status, headers=((CHAOS_HEADER, f"Status {status}"),))

            return handle

        return Filter(wrap)

    def __str__(self) -> str:
        return f"ReturnStatus ({self.status})"


@dataclass(frozen=True, slots=True)
class SnipBody(Behaviour):
    """Truncate the downstream response body to a random length."""

    rng: random_module.Random = field(default_factory=random_module.Random, compare=False, repr=False)

    def as_filter(self) -> Filter:
        rng = self.rng

        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                response = next_handler(request)
                size = rng.randrange(len(response.body)) if response.body else 0
                return response.with_body(response.body[:size]).with_header(CHAOS_HEADER, f"Snip body ({size}b)")

            return handle

        return Filter(wrap)

    def __str__(self) -> str:
        return "SnipBody"


@dataclass(frozen=True, slots=True)
class SnipRequestBody(Behaviour):
    """Truncate the request body to a random length before calling downstream."""

    rng: random_module.Random = field(default_factory=random_module.Random, compare=False, repr=False)

    def as_filter(self) -> Filter:
        rng = self.rng

        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                size = rng.randrange(len(request.body)) if request.body else 0
                response = next_handler(request.with_body(request.body[:size]))
                return response.with_header(CHAOS_HEADER, f"Snip request body ({size}b)")

            return handle

        return Filter(wrap)

    def __str__(self) -> str:
        return "SnipRequestBody"


@dataclass(frozen=True, slots=True)
class NoBody(Behaviour):
    """Strip the downstream response body."""

    def as_filter(self) -> Filter:
        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                return next_handler(request).with_body(b"").with_header(CHAOS_HEADER, "No body")

            return handle

        return Filter(wrap)

    def __str__(self) -> str:
        return "NoBody"


@dataclass(frozen=True, slots=True)
class Latency(Behaviour):
    """Sleep for a random duration in [minimum, maximum] before calling downstream.

    Only the calling thread sleeps. Inject sleep_func and a seeded rng for
    deterministic testing.
    """

    minimum: timedelta = timedelta(milliseconds=100)
    maximum: timedelta = timedelta(milliseconds=500)
    rng: random_module.Random = field(default_factory=random_module.Random, compare=False, repr=False)
    sleep_func: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.minimum < timedelta(0):
            raise ValueError(f"Latency minimum ({self.minimum}) must not be negative")
        if self.minimum > self.maximum:
            raise ValueError(f"Latency minimum ({self.minimum}) must be <= maximum ({self.maximum})")

    def as_filter(self) -> Filter:
        low_ms = _millis(self.minimum)
        high_ms = _millis(self.maximum)
        rng = self.rng
        sleep_func = self.sleep_func

        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                delay_ms = rng.randint(low_ms, high_ms)
                sleep_func(delay_ms / 1000.0)
                return next_handler(request).with_header(CHAOS_HEADER, f"Latency ({delay_ms}ms)")

            return handle

        return Filter(wrap)

    def __str__(self) -> str:
        return f"Latency (range = {_millis(self.minimum)}ms to {_millis(self.maximum)}ms)"


@dataclass(frozen=True, slots=True)
class ThrowException(Behaviour):
    """Raise ChaosFault instead of calling downstream."""

    message: str = "Chaos behaviour injected!"

    def as_filter(self) -> Filter:
        message = self.message

        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                raise ChaosFault(message)

            return handle

        return Filter(wrap)

    def __str__(self) -> str:
        return f"ThrowException {ChaosFault.__name__} {self.message}"


@dataclass(frozen=True, slots=True)
class NoOp(Behaviour):
    """Forward every request untouched."""

    def as_filter(self) -> Filter:
        return Filter.identity()

    def __str__(self) -> str:
        return "NoOp"


def _millis(delta: timedelta) -> int:
    return int(delta / timedelta(milliseconds=1))
