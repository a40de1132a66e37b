# src/faultline/chaos/config.py
"""Declarative stage configuration: decoding, encoding and validation.

Every trigger, behaviour and stage object carries a "type" discriminator:

    {
        "type": "repeat",
        "stages": [
            {"type": "trigger",
             "trigger": {"type": "always"},
             "behaviour": {"type": "status", "status": 418},
             "until": {"type": "request", "method": "POST"}},
            {"type": "wait", "until": {"type": "delay", "period": "PT5S"}}
        ],
        "until": {"type": "request", "method": "DELETE"}
    }

Uses Pydantic discriminated unions with frozen, extra="forbid" models, so an
unknown "type" or a malformed field fails at decode time with a
ConfigurationError. Validated models are turned into engine objects through
static tag -> builder tables. Any stage object may carry "until" (boundary
trigger) and "then" (successor stage).

The encoder only emits tags that the decoder accepts, so
decode_stage(encode_stage(stage)) describes the same structure as stage.
"""

from __future__ import annotations

import json
import random as random_module
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from functools import reduce
from typing import Annotated, Any, Literal

from pydantic import AwareDatetime, BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from faultline.chaos.behaviours import (
    Behaviour,
    Latency,
    NoBody,
    NoOp,
    ReturnStatus,
    SnipBody,
    SnipRequestBody,
    ThrowException,
)
from faultline.chaos.errors import ConfigurationError
from faultline.chaos.stages import Bounded, Chained, Repeat, Stage, Triggered, Variable, Wait
from faultline.chaos.triggers import (
    Always,
    And,
    Deadline,
    Delay,
    MatchRequest,
    Not,
    Or,
    PercentageBased,
    Trigger,
)
from faultline.core.clock import DEFAULT_CLOCK, Clock
from faultline.core.http import Method

_MODEL_CONFIG = {"frozen": True, "extra": "forbid"}

# =============================================================================
# Trigger Models
# =============================================================================


class AlwaysTriggerConfig(BaseModel):
    """Matches every request."""

    model_config = _MODEL_CONFIG

    type: Literal["always"]


class NotTriggerConfig(BaseModel):
    """Negates a trigger."""

    model_config = _MODEL_CONFIG

    type: Literal["not"]
    trigger: TriggerConfig


class AndTriggerConfig(BaseModel):
    """All triggers must match (folded left)."""

    model_config = _MODEL_CONFIG

    type: Literal["and"]
    triggers: list[TriggerConfig] = Field(min_length=2)


class OrTriggerConfig(BaseModel):
    """Any trigger may match (folded left)."""

    model_config = _MODEL_CONFIG

    type: Literal["or"]
    triggers: list[TriggerConfig] = Field(min_length=2)


class RequestTriggerConfig(BaseModel):
    """Field-based request matcher. Patterns are full-match regexes."""

    model_config = _MODEL_CONFIG

    type: Literal["request"]
    method: Method | None = Field(default=None, description="Exact request method")
    path: str | None = Field(default=None, description="Regex for the request path")
    queries: dict[str, str] = Field(default_factory=dict, description="Query parameter name -> regex")
    headers: dict[str, str] = Field(default_factory=dict, description="Header name -> regex")
    body: str | None = Field(default=None, description="Regex for the request body")

    @field_validator("path", "body")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        if v is not None:
            _compile(v)
        return v

    @field_validator("queries", "headers")
    @classmethod
    def validate_patterns(cls, v: dict[str, str]) -> dict[str, str]:
        for pattern in v.values():
            _compile(pattern)
        return v


class PercentageTriggerConfig(BaseModel):
    """Matches a random share of requests."""

    model_config = _MODEL_CONFIG

    type: Literal["percentage"]
    percentage: int = Field(ge=0, le=100, description="Share of requests to match (0-100)")


class DeadlineTriggerConfig(BaseModel):
    """Matches once the wall clock passes end_time."""

    model_config = _MODEL_CONFIG

    type: Literal["deadline"]
    end_time: AwareDatetime = Field(description="Timezone-aware instant after which the trigger matches")


class DelayTriggerConfig(BaseModel):
    """Matches once period has elapsed since the configuration was decoded."""

    model_config = _MODEL_CONFIG

    type: Literal["delay"]
    period: timedelta = Field(description="ISO 8601 duration (e.g. PT5S) or seconds")


TriggerConfig = Annotated[
    AlwaysTriggerConfig
    | NotTriggerConfig
    | AndTriggerConfig
    | OrTriggerConfig
    | RequestTriggerConfig
    | PercentageTriggerConfig
    | DeadlineTriggerConfig
    | DelayTriggerConfig,
    Field(discriminator="type"),
]


# =============================================================================
# Behaviour Models
# =============================================================================


class StatusBehaviourConfig(BaseModel):
    model_config = _MODEL_CONFIG

    type: Literal["status"]
    status: int = Field(ge=100, le=599, description="Status code of the replacement response")


class SnipBodyBehaviourConfig(BaseModel):
    model_config = _MODEL_CONFIG

    type: Literal["body"]


class SnipRequestBehaviourConfig(BaseModel):
    model_config = _MODEL_CONFIG

    type: Literal["snip-request"]


class NoBodyBehaviourConfig(BaseModel):
    model_config = _MODEL_CONFIG

    type: Literal["nobody"]


class LatencyBehaviourConfig(BaseModel):
    """Random latency in [min, max]."""

    model_config = {**_MODEL_CONFIG, "populate_by_name": True}

    type: Literal["latency"]
    minimum: timedelta = Field(default=timedelta(milliseconds=100), alias="min")
    maximum: timedelta = Field(default=timedelta(milliseconds=500), alias="max")

    @field_validator("minimum", "maximum")
    @classmethod
    def validate_non_negative(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError(f"latency must not be negative, got {v}")
        return v

    @model_validator(mode="after")
    def validate_range(self) -> LatencyBehaviourConfig:
        """Ensure min <= max."""
        if self.minimum > self.maximum:
            raise ValueError(f"latency min ({self.minimum}) must be <= max ({self.maximum})")
        return self


class ThrowBehaviourConfig(BaseModel):
    model_config = _MODEL_CONFIG

    type: Literal["throw"]
    message: str = "Chaos behaviour injected!"


class NoOpBehaviourConfig(BaseModel):
    model_config = _MODEL_CONFIG

    type: Literal["noop"]


BehaviourConfig = Annotated[
    StatusBehaviourConfig
    | SnipBodyBehaviourConfig
    | SnipRequestBehaviourConfig
    | NoBodyBehaviourConfig
    | LatencyBehaviourConfig
    | ThrowBehaviourConfig
    | NoOpBehaviourConfig,
    Field(discriminator="type"),
]


# =============================================================================
# Stage Models
# =============================================================================


class _StageConfigBase(BaseModel):
    """Fields shared by every stage object."""

    model_config = _MODEL_CONFIG

    until: TriggerConfig | None = Field(default=None, description="Boundary trigger ending this stage")
    then: StageConfig | None = Field(default=None, description="Stage that follows once this one completes")


class WaitStageConfig(_StageConfigBase):
    type: Literal["wait"]


class TriggerStageConfig(_StageConfigBase):
    type: Literal["trigger"]
    trigger: TriggerConfig
    behaviour: BehaviourConfig


class RepeatStageConfig(_StageConfigBase):
    type: Literal["repeat"]
    stages: list[StageConfig] = Field(min_length=1, description="Cycle, sequenced with then")


class BoundedStageConfig(_StageConfigBase):
    """Explicit until around a stage that already carries until/then."""

    type: Literal["bounded"]
    stage: StageConfig
    until: TriggerConfig


StageConfig = Annotated[
    WaitStageConfig | TriggerStageConfig | RepeatStageConfig | BoundedStageConfig,
    Field(discriminator="type"),
]

for _model in (
    NotTriggerConfig,
    AndTriggerConfig,
    OrTriggerConfig,
    _StageConfigBase,
    WaitStageConfig,
    TriggerStageConfig,
    RepeatStageConfig,
    BoundedStageConfig,
):
    _model.model_rebuild()

_STAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(StageConfig)
_TRIGGER_ADAPTER: TypeAdapter[Any] = TypeAdapter(TriggerConfig)
_BEHAVIOUR_ADAPTER: TypeAdapter[Any] = TypeAdapter(BehaviourConfig)


def _compile(pattern: str) -> None:
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"Invalid regex {pattern!r}: {e}") from e


# =============================================================================
# Decoding
# =============================================================================


@dataclass(frozen=True, slots=True)
class BuildContext:
    """Collaborators injected into decoded engine objects.

    Attributes:
        clock: Clock for deadline/delay triggers.
        rng: Random source shared by percentage triggers and random behaviours.
             None gives every object its own unseeded Random.
    """

    clock: Clock = DEFAULT_CLOCK
    rng: random_module.Random | None = None

    def random(self) -> random_module.Random:
        return self.rng if self.rng is not None else random_module.Random()


def _fold(op: Callable[[Trigger, Trigger], Trigger], configs: list[Any], ctx: BuildContext) -> Trigger:
    return reduce(op, (_build_trigger(c, ctx) for c in configs))


_TRIGGER_BUILDERS: dict[str, Callable[[Any, BuildContext], Trigger]] = {
    "always": lambda c, ctx: Always(),
    "not": lambda c, ctx: Not(_build_trigger(c.trigger, ctx)),
    "and": lambda c, ctx: _fold(And, c.triggers, ctx),
    "or": lambda c, ctx: _fold(Or, c.triggers, ctx),
    "request": lambda c, ctx: MatchRequest(
        method=c.method,
        path=c.path,
        queries=tuple(c.queries.items()),
        headers=tuple(c.headers.items()),
        body=c.body,
    ),
    "percentage": lambda c, ctx: PercentageBased(c.percentage, rng=ctx.random()),
    "deadline": lambda c, ctx: Deadline(c.end_time, clock=ctx.clock),
    "delay": lambda c, ctx: Delay.after(c.period, clock=ctx.clock),
}

_BEHAVIOUR_BUILDERS: dict[str, Callable[[Any, BuildContext], Behaviour]] = {
    "status": lambda c, ctx: ReturnStatus(c.status),
    "body": lambda c, ctx: SnipBody(rng=ctx.random()),
    "snip-request": lambda c, ctx: SnipRequestBody(rng=ctx.random()),
    "nobody": lambda c, ctx: NoBody(),
    "latency": lambda c, ctx: Latency(c.minimum, c.maximum, rng=ctx.random()),
    "throw": lambda c, ctx: ThrowException(c.message),
    "noop": lambda c, ctx: NoOp(),
}


def _build_repeat(c: RepeatStageConfig, ctx: BuildContext) -> Stage:
    template = reduce(lambda acc, nxt: acc.then(nxt), (_build_stage(s, ctx) for s in c.stages))
    return Repeat.of(template)


_STAGE_BUILDERS: dict[str, Callable[[Any, BuildContext], Stage]] = {
    "wait": lambda c, ctx: Wait(),
    "trigger": lambda c, ctx: Triggered(_build_trigger(c.trigger, ctx), _build_behaviour(c.behaviour, ctx)),
    "repeat": _build_repeat,
    "bounded": lambda c, ctx: _build_stage(c.stage, ctx),
}


def _build_trigger(config: Any, ctx: BuildContext) -> Trigger:
    return _TRIGGER_BUILDERS[config.type](config, ctx)


def _build_behaviour(config: Any, ctx: BuildContext) -> Behaviour:
    return _BEHAVIOUR_BUILDERS[config.type](config, ctx)


def _build_stage(config: Any, ctx: BuildContext) -> Stage:
    stage = _STAGE_BUILDERS[config.type](config, ctx)
    if config.until is not None:
        stage = stage.until(_build_trigger(config.until, ctx))
    if config.then is not None:
        stage = stage.then(_build_stage(config.then, ctx))
    return stage


def _validate(adapter: TypeAdapter[Any], data: Mapping[str, Any] | str, kind: str) -> Any:
    try:
        if isinstance(data, str):
            return adapter.validate_json(data)
        return adapter.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {kind} configuration: {e}") from e


def _context(clock: Clock | None, rng: random_module.Random | None) -> BuildContext:
    return BuildContext(clock=clock if clock is not None else DEFAULT_CLOCK, rng=rng)


def decode_stage(
    data: Mapping[str, Any] | str,
    *,
    clock: Clock | None = None,
    rng: random_module.Random | None = None,
) -> Stage:
    """Decode a stage from a mapping or a JSON string.

    Args:
        data: Declarative stage object.
        clock: Clock for time-based triggers (default: system clock).
        rng: Seeded Random for deterministic percentage/snip/latency choices.

    Returns:
        The composed Stage.

    Raises:
        ConfigurationError: On unknown "type" tags or malformed fields.
    """
    return _build_stage(_validate(_STAGE_ADAPTER, data, "stage"), _context(clock, rng))


def decode_trigger(
    data: Mapping[str, Any] | str,
    *,
    clock: Clock | None = None,
    rng: random_module.Random | None = None,
) -> Trigger:
    """Decode a trigger from a mapping or a JSON string."""
    return _build_trigger(_validate(_TRIGGER_ADAPTER, data, "trigger"), _context(clock, rng))


def decode_behaviour(
    data: Mapping[str, Any] | str,
    *,
    rng: random_module.Random | None = None,
) -> Behaviour:
    """Decode a behaviour from a mapping or a JSON string."""
    return _build_behaviour(_validate(_BEHAVIOUR_ADAPTER, data, "behaviour"), _context(None, rng))


# =============================================================================
# Encoding
# =============================================================================


def _encode_trigger_model(trigger: Trigger) -> BaseModel:
    match trigger:
        case Always():
            return AlwaysTriggerConfig(type="always")
        case Not(trigger=inner):
            return NotTriggerConfig(type="not", trigger=_encode_trigger_model(inner))
        case And(left=left, right=right):
            return AndTriggerConfig(type="and", triggers=[_encode_trigger_model(left), _encode_trigger_model(right)])
        case Or(left=left, right=right):
            return OrTriggerConfig(type="or", triggers=[_encode_trigger_model(left), _encode_trigger_model(right)])
        case MatchRequest():
            return RequestTriggerConfig(
                type="request",
                method=trigger.method,
                path=trigger.path,
                queries=dict(trigger.queries),
                headers=dict(trigger.headers),
                body=trigger.body,
            )
        case PercentageBased(percentage=percentage):
            return PercentageTriggerConfig(type="percentage", percentage=percentage)
        case Deadline(end_time=end_time):
            return DeadlineTriggerConfig(type="deadline", end_time=end_time)
        case Delay(period=period):
            return DelayTriggerConfig(type="delay", period=period)
    raise ConfigurationError(f"Cannot encode trigger of type {type(trigger).__name__}")


def _encode_behaviour_model(behaviour: Behaviour) -> BaseModel:
    match behaviour:
        case ReturnStatus(status=status):
            return StatusBehaviourConfig(type="status", status=status)
        case SnipBody():
            return SnipBodyBehaviourConfig(type="body")
        case SnipRequestBody():
            return SnipRequestBehaviourConfig(type="snip-request")
        case NoBody():
            return NoBodyBehaviourConfig(type="nobody")
        case Latency(minimum=minimum, maximum=maximum):
            return LatencyBehaviourConfig(type="latency", minimum=minimum, maximum=maximum)
        case ThrowException(message=message):
            return ThrowBehaviourConfig(type="throw", message=message)
        case NoOp():
            return NoOpBehaviourConfig(type="noop")
    raise ConfigurationError(f"Cannot encode behaviour of type {type(behaviour).__name__}")


def _chain_links(stage: Stage) -> list[Stage]:
    """Split a sequencing chain into the elements that then() joins."""
    if isinstance(stage, Bounded) and stage.successor is not None:
        return [Bounded(stage.inner, stage.boundary), *_chain_links(stage.successor)]
    if isinstance(stage, Chained):
        return [stage.first, *_chain_links(stage.next_stage)]
    return [stage]


def _attach_then(model: Any, successor: Any) -> Any:
    """Attach successor at the tail of model's then chain."""
    if model.then is None:
        return model.model_copy(update={"then": successor})
    return model.model_copy(update={"then": _attach_then(model.then, successor)})


def _encode_stage_model(stage: Stage) -> Any:
    if isinstance(stage, Wait):
        return WaitStageConfig(type="wait")
    if isinstance(stage, Triggered):
        return TriggerStageConfig(
            type="trigger",
            trigger=_encode_trigger_model(stage.trigger),
            behaviour=_encode_behaviour_model(stage.behaviour),
        )
    if isinstance(stage, Repeat):
        return RepeatStageConfig(type="repeat", stages=[_encode_stage_model(s) for s in _chain_links(stage.build())])
    if isinstance(stage, Variable):
        return _encode_stage_model(stage.current)
    if isinstance(stage, Bounded):
        inner = _encode_stage_model(stage.inner)
        until = _encode_trigger_model(stage.boundary)
        then = _encode_stage_model(stage.successor) if stage.successor is not None else None
        if inner.until is None and inner.then is None:
            return inner.model_copy(update={"until": until, "then": then})
        return BoundedStageConfig(type="bounded", stage=inner, until=until, then=then)
    if isinstance(stage, Chained):
        return _attach_then(_encode_stage_model(stage.first), _encode_stage_model(stage.next_stage))
    raise ConfigurationError(f"Cannot encode stage of type {type(stage).__name__}")


def _dump(model: BaseModel) -> dict[str, Any]:
    dumped: dict[str, Any] = model.model_dump(mode="json", by_alias=True, exclude_defaults=True)
    return dumped


def encode_stage(stage: Stage) -> dict[str, Any]:
    """Encode a stage as a JSON-safe declarative object.

    A Variable is encoded as a snapshot of the stage it currently holds.

    Raises:
        ConfigurationError: If the tree contains an object with no declarative form.
    """
    return _dump(_encode_stage_model(stage))


def encode_trigger(trigger: Trigger) -> dict[str, Any]:
    return _dump(_encode_trigger_model(trigger))


def encode_behaviour(behaviour: Behaviour) -> dict[str, Any]:
    return _dump(_encode_behaviour_model(behaviour))


def stage_to_json(stage: Stage, *, indent: int | None = None) -> str:
    """Encode a stage as a JSON string."""
    return json.dumps(encode_stage(stage), indent=indent)
