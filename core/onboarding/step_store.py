"""
Step Data Store - Local Wizard State

Holds the latest local data for each step, the last data the server accepted
(the baseline), and which steps have unsaved edits. Also tracks the version
the client believes the server holds for each step.

Principles:
1. Writing data equal to what is already stored is a no-op
2. A step leaves the dirty set only when the server accepted exactly its current data
3. Dirty order is last-edit order, oldest first
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from core.progress.schema import ONBOARDING_STEPS


logger = logging.getLogger(__name__)


def deep_equal(left: Any, right: Any) -> bool:
    """
    Semantic equality for JSON-like values.

    Mapping key order is ignored; sequence order is significant. Booleans
    never equal numbers, so {"flag": True} differs from {"flag": 1}.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right

    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left.keys()) != set(right.keys()):
            return False
        return all(deep_equal(left[key], right[key]) for key in left)

    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))

    if isinstance(left, (Mapping, list, tuple)) or isinstance(right, (Mapping, list, tuple)):
        return False

    return left == right


class StepDataStore:
    """
    Current and last-saved data per step, plus the dirty set.

    Usage:
        store = StepDataStore()
        store.set_step_data(1, {"address": "Jl. Pantai 1"})   # True, step 1 dirty
        store.mark_saved(1, {"address": "Jl. Pantai 1"})      # step 1 clean
    """

    def __init__(self, steps: Iterable[int] = ONBOARDING_STEPS):
        self._steps = tuple(steps)
        self._current: dict[int, dict[str, Any]] = {step: {} for step in self._steps}
        self._baseline: dict[int, dict[str, Any]] = {step: {} for step in self._steps}
        self._dirty: dict[int, int] = {}  # step -> edit sequence
        self._sequence = 0

    def _check_step(self, step: int) -> None:
        if step not in self._current:
            raise ValueError(f"Unknown step: {step}")

    def set_step_data(self, step: int, data: dict[str, Any]) -> bool:
        """
        Store new local data for a step.

        Returns:
            True when the data changed and the step is now dirty,
            False when it was deep-equal to what was already stored
        """
        self._check_step(step)
        if deep_equal(self._current[step], data):
            return False

        self._current[step] = copy.deepcopy(data)
        self._sequence += 1
        self._dirty.pop(step, None)
        self._dirty[step] = self._sequence
        return True

    def get_step_data(self, step: int) -> dict[str, Any]:
        self._check_step(step)
        return copy.deepcopy(self._current[step])

    def get_baseline(self, step: int) -> dict[str, Any]:
        self._check_step(step)
        return copy.deepcopy(self._baseline[step])

    def is_dirty(self, step: int) -> bool:
        return step in self._dirty

    def dirty_steps(self) -> list[int]:
        """Dirty steps, least recently edited first."""
        return sorted(self._dirty, key=self._dirty.__getitem__)

    def mark_saved(self, step: int, sent_data: dict[str, Any]) -> bool:
        """
        Record that the server accepted `sent_data` for a step.

        The step stays dirty when it was edited again while the save was in
        flight.

        Returns:
            True when the step is now clean
        """
        self._check_step(step)
        self._baseline[step] = copy.deepcopy(sent_data)
        if deep_equal(self._current[step], sent_data):
            self._dirty.pop(step, None)
            return True
        logger.debug("Step %s changed while its save was in flight; still dirty", step)
        return False

    def replace_step(self, step: int, data: dict[str, Any]) -> None:
        """Adopt server data as both current and baseline; the step becomes clean."""
        self._check_step(step)
        self._current[step] = copy.deepcopy(data)
        self._baseline[step] = copy.deepcopy(data)
        self._dirty.pop(step, None)

    def rebase_step(self, step: int, server_data: dict[str, Any]) -> None:
        """Adopt server data as the baseline while keeping local edits."""
        self._check_step(step)
        self._baseline[step] = copy.deepcopy(server_data)

    def replace_all(self, step_data: Mapping[int, dict[str, Any]]) -> None:
        """Load server data for every given step; all of them become clean."""
        for step, data in step_data.items():
            self.replace_step(step, data)

    def snapshot(self) -> dict[int, dict[str, Any]]:
        """Deep copy of the current data of every step."""
        return {step: copy.deepcopy(data) for step, data in self._current.items()}

    def has_data(self) -> bool:
        return any(self._current.values())


class VersionLedger:
    """
    Version the client believes the server holds for each step.

    Unknown steps read as version 0. Only server responses move entries.
    """

    def __init__(self, versions: Optional[Mapping[int, int]] = None):
        self._versions: dict[int, int] = {}
        if versions:
            self.replace_all(versions)

    def get(self, step: int) -> int:
        return self._versions.get(step, 0)

    def adopt(self, step: int, version: int) -> None:
        """Take a version reported by the server."""
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise ValueError(f"Invalid version for step {step}: {version!r}")
        previous = self._versions.get(step, 0)
        if version < previous:
            logger.warning("Step %s version moved backwards: %s -> %s", step, previous, version)
        self._versions[step] = version

    def replace_all(self, versions: Mapping[int, int]) -> None:
        for step, version in versions.items():
            self.adopt(int(step), version)

    def as_dict(self) -> dict[int, int]:
        return dict(self._versions)
