# tests/unit/chaos/test_stages.py
"""Unit tests for the stage state machine and its combinators.

Covers leaf stages, until/then sequencing, Repeat restart, Variable hot-swap,
canonical descriptions and the Filter conversion.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from faultline.chaos.behaviours import CHAOS_HEADER, ReturnStatus, ThrowException
from faultline.chaos.errors import ChaosFault, StageInvariantError
from faultline.chaos.stages import (
    Bounded,
    Chained,
    Outcome,
    OutcomeKind,
    Repeat,
    Stage,
    Triggered,
    Variable,
    Wait,
    applied_when,
)
from faultline.chaos.triggers import Always, MatchRequest, Not, Trigger
from faultline.core.http import Filter, Handler, Method, Request, Response

OK = Response(200, body=b"body")


def ok(request: Request) -> Response:
    return OK


def method_is(method: Method) -> MatchRequest:
    return MatchRequest(method=method)


def status_stage(status: int) -> Stage:
    return ReturnStatus(status).applied_when(Always())


def statuses(app, methods: list[Method]) -> list[int]:
    return [app(Request(m)).status for m in methods]


class CountingTrigger(Trigger):
    """Trigger recording how often it was evaluated."""

    def __init__(self, inner: Trigger) -> None:
        self.inner = inner
        self.calls = 0

    def matches(self, request: Request) -> bool:
        self.calls += 1
        return self.inner.matches(request)

    def __str__(self) -> str:
        return f"Counting {self.inner}"


# =============================================================================
# Outcome
# =============================================================================


class TestOutcome:
    def test_override_carries_filter(self) -> None:
        f = Filter.identity()
        outcome = Outcome.override(f)
        assert outcome.kind == OutcomeKind.OVERRIDE
        assert outcome.filter is f
        assert outcome.is_override
        assert not outcome.is_exhausted

    def test_pass_through_and_exhausted_are_shared_values(self) -> None:
        assert Outcome.pass_through() is Outcome.pass_through()
        assert Outcome.exhausted().is_exhausted
        assert not Outcome.pass_through().is_exhausted


# =============================================================================
# Leaves
# =============================================================================


class TestWait:
    def test_wait_does_not_alter_the_response(
        self, ok_handler: Handler, request_for: Callable[[Method], Request]
    ) -> None:
        app = Wait().as_filter().then(ok_handler)
        for method in Method:
            assert app(request_for(method)) == ok_handler(request_for(method))

    def test_wait_passes_through(self) -> None:
        assert Wait().invoke(Request(Method.GET)) == Outcome.pass_through()

    def test_description(self) -> None:
        assert str(Wait()) == "Wait"


class TestTriggered:
    def test_overrides_when_trigger_matches(self) -> None:
        app = status_stage(404).as_filter().then(ok)
        response = app(Request(Method.GET))
        assert response.status == 404
        assert response.header(CHAOS_HEADER) == "Status 404"

    def test_passes_through_when_trigger_does_not_match(self) -> None:
        app = ReturnStatus(404).applied_when(method_is(Method.POST)).as_filter().then(ok)
        assert app(Request(Method.GET)) == OK
        assert app(Request(Method.POST)).status == 404

    def test_never_exhausts(self) -> None:
        stage = status_stage(500)
        for method in Method:
            assert not stage.invoke(Request(method)).is_exhausted

    def test_functional_spelling_builds_same_leaf(self) -> None:
        assert applied_when(Always(), ReturnStatus(404)) == ReturnStatus(404).applied_when(Always())
        assert isinstance(applied_when(Always(), ReturnStatus(404)), Triggered)

    def test_description(self) -> None:
        assert str(status_stage(404)) == "Always ReturnStatus (404)"

    def test_behaviour_fault_propagates_unmodified(self) -> None:
        app = ThrowException("boom").applied_when(Always()).as_filter().then(ok)
        with pytest.raises(ChaosFault, match="boom"):
            app(Request(Method.GET))


# =============================================================================
# until
# =============================================================================


class TestUntil:
    def test_until_stops_when_the_trigger_is_hit(self) -> None:
        app = status_stage(404).until(method_is(Method.POST)).as_filter().then(ok)
        assert statuses(app, [Method.GET, Method.POST, Method.GET]) == [404, 200, 200]

    def test_triggering_request_is_serviced_by_successor(self) -> None:
        stage = status_stage(418).until(method_is(Method.POST)).then(status_stage(404))
        app = stage.as_filter().then(ok)
        assert app(Request(Method.GET)).status == 418
        assert app(Request(Method.POST)).status == 404

    def test_latch_never_reverts(self) -> None:
        app = status_stage(404).until(method_is(Method.POST)).then(status_stage(503)).as_filter().then(ok)
        app(Request(Method.POST))
        for method in [Method.GET, Method.PUT, Method.POST, Method.GET]:
            assert app(Request(method)).status == 503

    def test_boundary_not_evaluated_after_firing(self) -> None:
        boundary = CountingTrigger(method_is(Method.POST))
        stage = status_stage(404).until(boundary)
        stage.invoke(Request(Method.GET))
        stage.invoke(Request(Method.POST))
        assert boundary.calls == 2
        for _ in range(5):
            stage.invoke(Request(Method.GET))
        assert boundary.calls == 2

    def test_standalone_until_reports_exhausted(self) -> None:
        stage = status_stage(404).until(method_is(Method.POST))
        assert stage.invoke(Request(Method.POST)).is_exhausted
        assert stage.invoke(Request(Method.GET)).is_exhausted

    def test_inner_pass_through_is_preserved_before_boundary(self) -> None:
        stage = ReturnStatus(404).applied_when(method_is(Method.PUT)).until(method_is(Method.POST))
        assert stage.invoke(Request(Method.GET)) == Outcome.pass_through()
        assert stage.invoke(Request(Method.PUT)).is_override

    def test_description(self) -> None:
        stage = status_stage(404).until(method_is(Method.POST))
        assert str(stage) == "Always ReturnStatus (404) until Request (method=POST)"


# =============================================================================
# then
# =============================================================================


class TestThen:
    def test_then_moves_onto_the_next_stage(self) -> None:
        app = (
            status_stage(418)
            .until(method_is(Method.POST))
            .then(status_stage(404).until(method_is(Method.TRACE)))
            .then(status_stage(500))
            .as_filter()
            .then(ok)
        )
        assert statuses(app, [Method.GET, Method.POST, Method.GET, Method.TRACE, Method.GET]) == [
            418,
            404,
            404,
            500,
            500,
        ]

    def test_then_attaches_at_the_tail(self) -> None:
        chain = (
            status_stage(418)
            .until(method_is(Method.POST))
            .then(status_stage(404).until(method_is(Method.OPTIONS)))
            .then(status_stage(504).until(method_is(Method.TRACE)))
        )
        assert isinstance(chain, Bounded)
        assert isinstance(chain.successor, Bounded)
        assert isinstance(chain.successor.successor, Bounded)
        assert chain.successor.successor.successor is None

    def test_then_on_unbounded_stage_chains(self) -> None:
        stage = Wait().then(status_stage(404))
        assert isinstance(stage, Chained)
        # Wait never exhausts, so the next stage is never reached
        assert stage.invoke(Request(Method.GET)) == Outcome.pass_through()

    def test_chained_hands_over_on_exhaustion(self) -> None:
        inner = Variable(status_stage(418).until(method_is(Method.POST)))
        app = inner.then(status_stage(404)).as_filter().then(ok)
        assert statuses(app, [Method.GET, Method.POST, Method.GET]) == [418, 404, 404]

    def test_description_of_a_chain(self) -> None:
        chain = status_stage(418).until(method_is(Method.POST)).then(status_stage(404))
        assert str(chain) == "[Always ReturnStatus (418) until Request (method=POST)] then [Always ReturnStatus (404)]"


# =============================================================================
# Repeat
# =============================================================================


def teapot_cycle() -> Stage:
    return (
        status_stage(418)
        .until(method_is(Method.POST))
        .then(status_stage(404).until(method_is(Method.OPTIONS)))
        .then(status_stage(504).until(method_is(Method.TRACE)))
    )


class TestRepeat:
    def test_repeat_starts_again_at_the_beginning(self) -> None:
        app = Repeat(teapot_cycle).until(method_is(Method.DELETE)).as_filter().then(ok)
        methods = [Method.GET, Method.POST, Method.GET, Method.OPTIONS, Method.GET, Method.TRACE, Method.DELETE]
        assert statuses(app, methods) == [418, 404, 404, 504, 504, 418, 200]

    def test_delete_short_circuits_regardless_of_cycle_position(self) -> None:
        app = Repeat(teapot_cycle).until(method_is(Method.DELETE)).as_filter().then(ok)
        assert statuses(app, [Method.GET, Method.POST, Method.DELETE, Method.GET, Method.TRACE]) == [
            418,
            404,
            200,
            200,
            200,
        ]

    def test_restart_discards_latch_state(self) -> None:
        app = Repeat(teapot_cycle).as_filter().then(ok)
        for _ in range(3):
            assert statuses(app, [Method.GET, Method.POST, Method.OPTIONS, Method.TRACE]) == [418, 404, 504, 418]
            # Back at the start of a fresh cycle: POST moves on again
            assert app(Request(Method.GET)).status == 418

    def test_builder_called_once_per_cycle(self) -> None:
        calls = []

        def builder() -> Stage:
            calls.append(1)
            return status_stage(404).until(method_is(Method.POST))

        repeat = Repeat(builder)
        assert len(calls) == 1
        repeat.invoke(Request(Method.GET))
        assert len(calls) == 1
        repeat.invoke(Request(Method.POST))
        assert len(calls) == 2

    def test_of_uses_fresh_copies_of_template(self) -> None:
        template = status_stage(404).until(method_is(Method.POST))
        app = Repeat.of(template).as_filter().then(ok)
        # POST ends the cycle and also ends the rebuilt one on the same call
        assert statuses(app, [Method.GET, Method.POST, Method.GET]) == [404, 200, 404]
        # The template itself was never invoked
        assert template.invoke(Request(Method.GET)).is_override

    def test_never_reports_exhausted(self) -> None:
        repeat = Repeat(lambda: status_stage(404).until(Always()))
        for _ in range(3):
            assert not repeat.invoke(Request(Method.GET)).is_exhausted

    def test_builder_returning_none_is_fatal(self) -> None:
        with pytest.raises(StageInvariantError, match="NoneType"):
            Repeat(lambda: None)  # type: ignore[arg-type,return-value]

    def test_builder_going_bad_mid_run_is_fatal(self) -> None:
        results: list[Stage | None] = [status_stage(404).until(method_is(Method.POST)), None]
        repeat = Repeat(lambda: results.pop(0))  # type: ignore[arg-type,return-value]
        with pytest.raises(StageInvariantError):
            repeat.invoke(Request(Method.POST))

    def test_description_single(self) -> None:
        assert str(Repeat(Wait)) == "Repeat [Wait]"

    def test_description_lists_chain_links(self) -> None:
        assert str(Repeat(teapot_cycle)) == (
            "Repeat [Always ReturnStatus (418) until Request (method=POST), "
            "Always ReturnStatus (404) until Request (method=OPTIONS), "
            "Always ReturnStatus (504) until Request (method=TRACE)]"
        )

    def test_description_of_outer_until(self) -> None:
        stage = Repeat(Wait).until(method_is(Method.DELETE))
        assert str(stage) == "Repeat [Wait] until Request (method=DELETE)"


# =============================================================================
# Variable
# =============================================================================


class TestVariable:
    def test_defaults_to_wait(self) -> None:
        variable = Variable()
        assert str(variable) == "Wait"
        assert variable.as_filter().then(ok)(Request(Method.GET)) == OK

    def test_should_provide_ability_to_modify_stage_at_runtime(self) -> None:
        variable = Variable()
        app = variable.as_filter().then(ok)
        assert app(Request(Method.GET)) == OK

        variable.current = Repeat(lambda: ReturnStatus(404).applied_when(Always()))
        assert str(variable) == "Repeat [Always ReturnStatus (404)]"

        response = app(Request(Method.GET))
        assert response.status == 404
        assert response.header(CHAOS_HEADER) == "Status 404"

    def test_swap_back_restores_pass_through(self) -> None:
        variable = Variable(status_stage(500))
        app = variable.as_filter().then(ok)
        assert app(Request(Method.GET)).status == 500
        variable.current = Wait()
        assert app(Request(Method.GET)) == OK

    def test_rejects_non_stage(self) -> None:
        variable = Variable()
        with pytest.raises(TypeError):
            variable.current = "Wait"  # type: ignore[assignment]

    def test_fresh_shares_the_slot(self) -> None:
        variable = Variable()
        assert variable.fresh() is variable


# =============================================================================
# Precedence
# =============================================================================


class TestOuterBoundaryPrecedence:
    def test_outer_boundary_checked_before_inner_cycle(self) -> None:
        inner_boundary = CountingTrigger(method_is(Method.DELETE))
        stage = Repeat(lambda: status_stage(404).until(inner_boundary)).until(method_is(Method.DELETE))
        app = stage.as_filter().then(ok)
        assert app(Request(Method.DELETE)) == OK
        # The inner engine never saw the request that ended the outer stage
        assert inner_boundary.calls == 0

    def test_not_trigger_inverts_boundary(self) -> None:
        app = status_stage(404).until(Not(method_is(Method.GET))).as_filter().then(ok)
        assert statuses(app, [Method.GET, Method.GET, Method.PUT, Method.GET]) == [404, 404, 200, 200]
