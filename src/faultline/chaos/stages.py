# src/faultline/chaos/stages.py
"""Stage state machine and its combinators.

A Stage decides, per request, one of three outcomes:

- override(filter): apply this filter around the real handler for this call
- pass_through:     decline this call, the real handler runs unmodified
- exhausted:        the stage has permanently completed; whatever follows
                    (a successor, a fresh Repeat cycle) takes the same request

Stages compose into a recursive tree:

    chain = (
        ReturnStatus(418).applied_when(Always()).until(MatchRequest(method=Method.POST))
        .then(ReturnStatus(404).applied_when(Always()).until(MatchRequest(method=Method.OPTIONS)))
    )
    app = Repeat(lambda: chain.fresh()).until(MatchRequest(method=Method.DELETE)).as_filter().then(handler)

Every mutable slot (Bounded latch, Repeat current, Variable current) lives in
an atomic cell from faultline.core.atomic and is only touched from the
owning stage's invoke() or its replacement contract.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from faultline.chaos.behaviours import Behaviour
from faultline.chaos.errors import StageInvariantError
from faultline.chaos.triggers import Trigger
from faultline.core.atomic import AtomicReference, Latch
from faultline.core.http import Filter, Handler, Request, Response
from faultline.core.logging import get_logger

logger = get_logger(__name__)


class OutcomeKind(Enum):
    """What a stage decided for a single call."""

    OVERRIDE = "override"
    PASS_THROUGH = "pass_through"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of Stage.invoke() for one request."""

    kind: OutcomeKind
    filter: Filter | None = None

    @classmethod
    def override(cls, chaos_filter: Filter) -> Outcome:
        """Apply chaos_filter around the real handler for this call only."""
        return cls(kind=OutcomeKind.OVERRIDE, filter=chaos_filter)

    @classmethod
    def pass_through(cls) -> Outcome:
        return _PASS_THROUGH

    @classmethod
    def exhausted(cls) -> Outcome:
        return _EXHAUSTED

    @property
    def is_override(self) -> bool:
        return self.kind == OutcomeKind.OVERRIDE

    @property
    def is_exhausted(self) -> bool:
        return self.kind == OutcomeKind.EXHAUSTED


_PASS_THROUGH = Outcome(kind=OutcomeKind.PASS_THROUGH)
_EXHAUSTED = Outcome(kind=OutcomeKind.EXHAUSTED)


class Stage:
    """Base class for every node of a stage tree."""

    __slots__ = ()

    def invoke(self, request: Request) -> Outcome:
        raise NotImplementedError

    def fresh(self) -> Stage:
        """Return a pristine copy of this tree with every latch reset."""
        raise NotImplementedError

    def until(self, boundary: Trigger) -> Bounded:
        """Stay active until boundary matches, then hand over to the successor."""
        return Bounded(self, boundary)

    def then(self, next_stage: Stage) -> Stage:
        """Attach next_stage at the tail of this stage's chain."""
        return Chained(self, next_stage)

    def link_descriptions(self) -> list[str]:
        """Descriptions of the elements of this stage's sequencing chain."""
        return [str(self)]

    def as_filter(self) -> Filter:
        """Convert to a Filter around the real handler.

        override(f) gives f(handler)(request); pass_through and a top-level
        exhausted both give handler(request).
        """
        stage = self

        def wrap(next_handler: Handler) -> Handler:
            def handle(request: Request) -> Response:
                outcome = stage.invoke(request)
                if outcome.kind == OutcomeKind.OVERRIDE:
                    if outcome.filter is None:
                        raise StageInvariantError(f"Override outcome without a filter from {stage}")
                    return outcome.filter(next_handler)(request)
                if outcome.kind in (OutcomeKind.PASS_THROUGH, OutcomeKind.EXHAUSTED):
                    return next_handler(request)
                raise StageInvariantError(f"Unknown outcome kind {outcome.kind!r} from {stage}")

            return handle

        return Filter(wrap)


# =============================================================================
# Leaves
# =============================================================================


@dataclass(frozen=True, slots=True)
class Wait(Stage):
    """No-op stage: passes every request through and never exhausts."""

    def invoke(self, request: Request) -> Outcome:
        return _PASS_THROUGH

    def fresh(self) -> Stage:
        return self

    def __str__(self) -> str:
        return "Wait"


@dataclass(frozen=True, slots=True)
class Triggered(Stage):
    """Leaf binding a behaviour to a trigger.

    Overrides with the behaviour's filter whenever the trigger matches,
    otherwise passes through. Never exhausts.
    """

    trigger: Trigger
    behaviour: Behaviour

    def invoke(self, request: Request) -> Outcome:
        if self.trigger.matches(request):
            return Outcome.override(self.behaviour.as_filter())
        return _PASS_THROUGH

    def fresh(self) -> Stage:
        return self

    def __str__(self) -> str:
        return f"{self.trigger} {self.behaviour}"


def applied_when(trigger: Trigger, behaviour: Behaviour) -> Stage:
    """Functional spelling of behaviour.applied_when(trigger)."""
    return Triggered(trigger=trigger, behaviour=behaviour)


# =============================================================================
# Sequencing
# =============================================================================


class Bounded(Stage):
    """Inner stage active until a boundary trigger fires, then a successor.

    Holds a one-shot latch. The boundary trigger is evaluated up to and
    including the first call on which it matches, and never again: from
    then on every call, the triggering one included, goes to the successor.
    With no successor the stage reports exhausted so that an enclosing
    Repeat or Chained can take over.
    """

    __slots__ = ("_boundary", "_inner", "_latch", "_successor")

    def __init__(self, inner: Stage, boundary: Trigger, successor: Stage | None = None) -> None:
        self._inner = inner
        self._boundary = boundary
        self._successor = successor
        self._latch = Latch()

    @property
    def inner(self) -> Stage:
        return self._inner

    @property
    def boundary(self) -> Trigger:
        return self._boundary

    @property
    def successor(self) -> Stage | None:
        return self._successor

    def invoke(self, request: Request) -> Outcome:
        if self._latch.is_fired:
            return self._hand_over(request)
        if self._boundary.matches(request):
            if self._latch.try_fire():
                logger.info(
                    "stage_boundary_fired",
                    boundary=str(self._boundary),
                    method=request.method.value,
                    path=request.path,
                )
            return self._hand_over(request)
        return self._inner.invoke(request)

    def _hand_over(self, request: Request) -> Outcome:
        if self._successor is None:
            return _EXHAUSTED
        return self._successor.invoke(request)

    def then(self, next_stage: Stage) -> Stage:
        if self._successor is None:
            return Bounded(self._inner, self._boundary, next_stage)
        return Bounded(self._inner, self._boundary, self._successor.then(next_stage))

    def fresh(self) -> Stage:
        successor = self._successor.fresh() if self._successor is not None else None
        return Bounded(self._inner.fresh(), self._boundary, successor)

    def _head(self) -> str:
        return f"{self._inner} until {self._boundary}"

    def link_descriptions(self) -> list[str]:
        if self._successor is None:
            return [self._head()]
        return [self._head(), *self._successor.link_descriptions()]

    def __str__(self) -> str:
        if self._successor is None:
            return self._head()
        return f"[{self._head()}] then [{self._successor}]"


class Chained(Stage):
    """first until it reports exhausted, then next_stage.

    Produced by then() on any stage that is not Bounded.
    """

    __slots__ = ("_first", "_next")

    def __init__(self, first: Stage, next_stage: Stage) -> None:
        self._first = first
        self._next = next_stage

    @property
    def first(self) -> Stage:
        return self._first

    @property
    def next_stage(self) -> Stage:
        return self._next

    def invoke(self, request: Request) -> Outcome:
        outcome = self._first.invoke(request)
        if outcome.is_exhausted:
            return self._next.invoke(request)
        return outcome

    def then(self, next_stage: Stage) -> Stage:
        return Chained(self._first, self._next.then(next_stage))

    def fresh(self) -> Stage:
        return Chained(self._first.fresh(), self._next.fresh())

    def link_descriptions(self) -> list[str]:
        return [str(self._first), *self._next.link_descriptions()]

    def __str__(self) -> str:
        return f"[{self._first}] then [{self._next}]"


# =============================================================================
# Composites
# =============================================================================


class Repeat(Stage):
    """Replays a stage tree forever.

    builder is a zero-argument function returning a brand-new stage tree.
    When the live instance reports exhausted, a fresh instance replaces it
    (discarding all latch state) and services the same request. Repeat
    itself never reports exhausted.

    Usage:
        Repeat(lambda: ReturnStatus(503).applied_when(Always()).until(MatchRequest(method=Method.POST)))
        Repeat.of(template)  # rebuilds from template.fresh()
    """

    __slots__ = ("_builder", "_current")

    def __init__(self, builder: Callable[[], Stage]) -> None:
        self._builder = builder
        self._current: AtomicReference[Stage] = AtomicReference(self.build())

    @classmethod
    def of(cls, template: Stage) -> Repeat:
        return cls(template.fresh)

    def build(self) -> Stage:
        """Run the builder, producing a fresh cycle.

        Raises:
            StageInvariantError: If the builder does not return a Stage.
        """
        stage = self._builder()
        if not isinstance(stage, Stage):
            raise StageInvariantError(f"Repeat builder returned {type(stage).__name__}, expected a Stage")
        return stage

    def invoke(self, request: Request) -> Outcome:
        current = self._current.get()
        outcome = current.invoke(request)
        if not outcome.is_exhausted:
            return outcome

        # Only one of several callers seeing the same expiring cycle installs
        # a replacement; the rest use whatever is installed now.
        if self._current.get() is current:
            replacement = self.build()
            if self._current.compare_and_set(current, replacement):
                logger.info("repeat_cycle_restarted", method=request.method.value, path=request.path)

        outcome = self._current.get().invoke(request)
        if outcome.is_exhausted:
            # A fresh cycle that exhausts on its very first request is not
            # rebuilt again for the same call.
            return _PASS_THROUGH
        return outcome

    def fresh(self) -> Stage:
        return Repeat(self._builder)

    def __str__(self) -> str:
        return f"Repeat [{', '.join(self.build().link_descriptions())}]"


class Variable(Stage):
    """Stage reference that an operator can swap at runtime.

    Each call reads the reference exactly once, so a swap never partially
    applies to a call in flight. Defaults to Wait.
    """

    __slots__ = ("_current",)

    def __init__(self, initial: Stage | None = None) -> None:
        self._current: AtomicReference[Stage] = AtomicReference(initial if initial is not None else Wait())

    @property
    def current(self) -> Stage:
        return self._current.get()

    @current.setter
    def current(self, stage: Stage) -> None:
        if not isinstance(stage, Stage):
            raise TypeError(f"Variable can only hold a Stage, got {type(stage).__name__}")
        self._current.set(stage)
        logger.info("variable_stage_installed", stage=str(stage))

    def invoke(self, request: Request) -> Outcome:
        return self._current.get().invoke(request)

    def fresh(self) -> Stage:
        # The slot is the operator's control handle; copies share it.
        return self

    def __str__(self) -> str:
        return str(self._current.get())
