# src/faultline/chaos/triggers.py
"""Triggers: stateless predicates over an inbound request.

A trigger decides *when* a behaviour is active (applied_when) or when a
bounded stage hands over to its successor (until). Triggers are frozen
values, safe to share between stages and to call concurrently.

Triggers combine with the boolean operators:

    MatchRequest(method=Method.POST) & ~MatchRequest(path="/health")
    Always() | PercentageBased(10)
"""

from __future__ import annotations

import random as random_module
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from faultline.core.clock import DEFAULT_CLOCK, Clock
from faultline.core.http import Method, Request


class Trigger:
    """Base class for all trigger variants."""

    __slots__ = ()

    def matches(self, request: Request) -> bool:
        raise NotImplementedError

    def __and__(self, other: Trigger) -> Trigger:
        return And(self, other)

    def __or__(self, other: Trigger) -> Trigger:
        return Or(self, other)

    def __invert__(self) -> Trigger:
        return Not(self)


@dataclass(frozen=True, slots=True)
class Always(Trigger):
    """Matches every request."""

    def matches(self, request: Request) -> bool:
        return True

    def __str__(self) -> str:
        return "Always"


@dataclass(frozen=True, slots=True)
class Not(Trigger):
    trigger: Trigger

    def matches(self, request: Request) -> bool:
        return not self.trigger.matches(request)

    def __str__(self) -> str:
        return f"NOT {self.trigger}"


@dataclass(frozen=True, slots=True)
class And(Trigger):
    left: Trigger
    right: Trigger

    def matches(self, request: Request) -> bool:
        return self.left.matches(request) and self.right.matches(request)

    def __str__(self) -> str:
        return f"({self.left} AND {self.right})"


@dataclass(frozen=True, slots=True)
class Or(Trigger):
    left: Trigger
    right: Trigger

    def matches(self, request: Request) -> bool:
        return self.left.matches(request) or self.right.matches(request)

    def __str__(self) -> str:
        return f"({self.left} OR {self.right})"


@dataclass(frozen=True, slots=True)
class MatchRequest(Trigger):
    """Field-based request matcher.

    Every configured field must match; unset fields are ignored. Path, query,
    header and body patterns are regular expressions matched against the
    whole value.

    Attributes:
        method: Exact request method.
        path: Regex for the request path.
        queries: (name, regex) pairs; the named query parameter must exist and match.
        headers: (name, regex) pairs; the named header must exist and match.
        body: Regex for the UTF-8 decoded request body.
    """

    method: Method | None = None
    path: str | None = None
    queries: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()
    body: str | None = None

    def matches(self, request: Request) -> bool:
        if self.method is not None and request.method != self.method:
            return False
        if self.path is not None and re.fullmatch(self.path, request.path) is None:
            return False
        for name, pattern in self.queries:
            value = request.query_value(name)
            if value is None or re.fullmatch(pattern, value) is None:
                return False
        for name, pattern in self.headers:
            value = request.header(name)
            if value is None or re.fullmatch(pattern, value) is None:
                return False
        if self.body is not None:
            text = request.body.decode("utf-8", errors="replace")
            if re.fullmatch(self.body, text, flags=re.DOTALL) is None:
                return False
        return True

    def __str__(self) -> str:
        parts: list[str] = []
        if self.method is not None:
            parts.append(f"method={self.method.value}")
        if self.path is not None:
            parts.append(f"path={self.path}")
        parts.extend(f"query {name}={pattern}" for name, pattern in self.queries)
        parts.extend(f"header {name}={pattern}" for name, pattern in self.headers)
        if self.body is not None:
            parts.append(f"body={self.body}")
        return f"Request ({', '.join(parts)})"


@dataclass(frozen=True, slots=True)
class PercentageBased(Trigger):
    """Matches a random share of requests.

    Inject a seeded random.Random() for deterministic testing.
    """

    percentage: int
    rng: random_module.Random = field(default_factory=random_module.Random, compare=False, repr=False)

    def matches(self, request: Request) -> bool:
        if self.percentage <= 0:
            return False
        return self.rng.random() * 100 < self.percentage

    def __str__(self) -> str:
        return f"PercentageBased ({self.percentage}%)"


@dataclass(frozen=True, slots=True)
class Deadline(Trigger):
    """Matches every request once the clock has passed end_time."""

    end_time: datetime
    clock: Clock = field(default=DEFAULT_CLOCK, compare=False, repr=False)

    def matches(self, request: Request) -> bool:
        return self.clock.now() > self.end_time

    def __str__(self) -> str:
        return f"Deadline ({self.end_time.isoformat()})"


@dataclass(frozen=True, slots=True)
class Delay(Trigger):
    """Matches every request once period has elapsed since construction.

    Build with Delay.after(period); the expiry instant is fixed at that point.
    """

    period: timedelta
    expires: datetime
    clock: Clock = field(default=DEFAULT_CLOCK, compare=False, repr=False)

    @classmethod
    def after(cls, period: timedelta, *, clock: Clock | None = None) -> Delay:
        clock = clock if clock is not None else DEFAULT_CLOCK
        return cls(period=period, expires=clock.now() + period, clock=clock)

    def matches(self, request: Request) -> bool:
        return self.clock.now() > self.expires

    def __str__(self) -> str:
        return f"Delay (expires {self.expires.isoformat()})"
