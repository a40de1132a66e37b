# src/faultline/chaos/errors.py
"""Error hierarchy for the chaos engine.

Configuration errors are raised synchronously while decoding. Invariant
errors indicate a programming bug and must never be caught and retried.
Faults raised by a behaviour (ChaosFault) are the intended output of the
engine, not engine errors.
"""


class ConfigurationError(Exception):
    """Raised when a declarative stage/trigger/behaviour definition is invalid."""

    pass


class StageInvariantError(Exception):
    """Raised when the stage machinery observes an impossible state.

    Examples: a Repeat builder returning something that is not a Stage, or an
    outcome of unknown kind.
    """

    pass


class ChaosFault(RuntimeError):
    """Deliberately injected failure raised by the ThrowException behaviour."""

    pass
