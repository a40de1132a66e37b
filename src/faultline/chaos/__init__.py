# src/faultline/chaos/__init__.py
"""Chaos stages: triggers, behaviours, the stage state machine and its configuration.

Provides:
- Triggers: stateless request predicates (Always, MatchRequest, PercentageBased, ...)
- Behaviours: fault filters (ReturnStatus, SnipBody, Latency, ThrowException, ...)
- Stages: applied_when / until / then / Repeat / Variable composition
- Config: tagged JSON/YAML decoding, encoding and presets
- ChaosEngine: runtime enable/disable/update, plus a Starlette admin app

Usage:
    from faultline.chaos import Always, MatchRequest, Repeat, ReturnStatus
    from faultline.core.http import Method

    stage = Repeat(
        lambda: ReturnStatus(503)
        .applied_when(Always())
        .until(MatchRequest(method=Method.POST))
    )
    app = stage.as_filter().then(handler)
"""

from faultline.chaos.behaviours import (
    CHAOS_HEADER,
    Behaviour,
    Latency,
    NoBody,
    NoOp,
    ReturnStatus,
    SnipBody,
    SnipRequestBody,
    ThrowException,
)
from faultline.chaos.config import (
    decode_behaviour,
    decode_stage,
    decode_trigger,
    encode_behaviour,
    encode_stage,
    encode_trigger,
    stage_to_json,
)
from faultline.chaos.config_loader import deep_merge, list_presets, load_preset, load_stage, load_stage_file
from faultline.chaos.engine import ChaosEngine
from faultline.chaos.errors import ChaosFault, ConfigurationError, StageInvariantError
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

__all__ = [
    "CHAOS_HEADER",
    "Always",
    "And",
    "Behaviour",
    "Bounded",
    "Chained",
    "ChaosEngine",
    "ChaosFault",
    "ConfigurationError",
    "Deadline",
    "Delay",
    "Latency",
    "MatchRequest",
    "NoBody",
    "NoOp",
    "Not",
    "Or",
    "Outcome",
    "OutcomeKind",
    "PercentageBased",
    "Repeat",
    "ReturnStatus",
    "SnipBody",
    "SnipRequestBody",
    "Stage",
    "StageInvariantError",
    "ThrowException",
    "Trigger",
    "Triggered",
    "Variable",
    "Wait",
    "applied_when",
    "decode_behaviour",
    "decode_stage",
    "decode_trigger",
    "deep_merge",
    "encode_behaviour",
    "encode_stage",
    "encode_trigger",
    "list_presets",
    "load_preset",
    "load_stage",
    "load_stage_file",
    "stage_to_json",
]
