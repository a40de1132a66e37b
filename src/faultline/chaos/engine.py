# src/faultline/chaos/engine.py
"""ChaosEngine: switchable chaos filter for a live process.

Wraps a Variable so an operator can install, enable, disable and toggle the
active stage without restarting the pipeline.

Usage:
    engine = ChaosEngine(ReturnStatus(503).applied_when(PercentageBased(10)))
    app = engine.then(handler)   # chaos starts disabled
    engine.enable()              # start injecting
    engine.update(decode_stage({"type": "wait"}))
    engine.disable()
"""

from __future__ import annotations

import threading
from typing import overload

from faultline.chaos.stages import Stage, Variable, Wait
from faultline.core.http import Filter, Handler
from faultline.core.logging import get_logger

logger = get_logger(__name__)


class ChaosEngine:
    """Owns the live stage and whether it is applied.

    Thread-safe: enable/disable/toggle/update serialize on an internal lock;
    request handling only reads the Variable.
    """

    def __init__(self, stage: Stage | None = None, *, enabled: bool = False) -> None:
        """Initialize the engine.

        Args:
            stage: Stage applied while enabled (default: Wait).
            enabled: Whether chaos starts active.
        """
        self._lock = threading.Lock()
        self._configured: Stage = stage if stage is not None else Wait()
        self._variable = Variable(self._configured if enabled else Wait())
        self._enabled = enabled

    @property
    def is_enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @property
    def description(self) -> str:
        """Canonical description of the active stage, or "none" when disabled."""
        return str(self.status()["chaos"])

    @property
    def stage(self) -> Stage:
        """The configured stage (applied only while enabled)."""
        with self._lock:
            return self._configured

    def enable(self, stage: Stage | None = None) -> None:
        """Start injecting, optionally installing a new stage first."""
        with self._lock:
            if stage is not None:
                self._configured = stage
            self._switch(True)
            installed = self._configured
        logger.info("chaos_enabled", stage=str(installed))

    def disable(self) -> None:
        """Stop injecting; every request passes through."""
        with self._lock:
            self._switch(False)
        logger.info("chaos_disabled")

    def toggle(self) -> bool:
        """Flip between enabled and disabled.

        Reading the current state and flipping it happen under one lock hold,
        so concurrent toggles never collapse into the same transition.

        Returns:
            The new enabled state.
        """
        with self._lock:
            enabled = not self._enabled
            self._switch(enabled)
            installed = self._configured
        if enabled:
            logger.info("chaos_enabled", stage=str(installed))
        else:
            logger.info("chaos_disabled")
        return enabled

    def _switch(self, enabled: bool) -> None:
        # Caller holds self._lock.
        self._variable.current = self._configured if enabled else Wait()
        self._enabled = enabled

    def update(self, stage: Stage) -> None:
        """Replace the configured stage, applying it immediately if enabled."""
        with self._lock:
            self._configured = stage
            if self._enabled:
                self._variable.current = stage
        logger.info("chaos_stage_updated", stage=str(stage))

    def as_filter(self) -> Filter:
        return self._variable.as_filter()

    @overload
    def then(self, other: Filter) -> Filter: ...

    @overload
    def then(self, other: Handler) -> Handler: ...

    def then(self, other: Filter | Handler) -> Filter | Handler:
        return self.as_filter().then(other)

    def status(self) -> dict[str, object]:
        """Status payload shared by the admin endpoints."""
        with self._lock:
            enabled = self._enabled
            configured = self._configured
        return {"chaos": str(configured) if enabled else "none", "enabled": enabled}
