"""Frame-skip state machine.

One `SkipState` exists per detector role and per sub-stage slot. The state
records how many frames have elapsed since the last fresh run, whether that
run produced nothing, and what it produced. `decide` is a pure function of a
state and its policy; the `after_*` helpers return the successor state. Only
`SkipStateStore.commit` mutates anything, so a frame that is cancelled before
it commits leaves every state untouched.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

from omnisight.core.dtypes import InstanceID, Role


class Action(str, Enum):
    RUN_FRESH = "run_fresh"
    REUSE_CACHE = "reuse_cache"


@dataclass(frozen=True)
class SkipPolicy:
    skip_frames: int = 0
    skip_initial: bool = False


@dataclass(frozen=True)
class SkipState:
    frames_since_detect: int = 0
    last_was_empty: bool = False
    cached: Tuple[Any, ...] = ()

    @property
    def is_inconsistent(self) -> bool:
        """Nothing cached although the last run was not recorded as empty."""
        return not self.cached and not self.last_was_empty


class StateKey(NamedTuple):
    role: Role
    stage: str
    instance_id: Optional[InstanceID] = None

    def __str__(self) -> str:
        parts = [self.role.value, self.stage]
        if self.instance_id is not None:
            parts.append(str(self.instance_id))
        return "/".join(parts)


def decide(state: Optional[SkipState], policy: SkipPolicy, video_optimized: bool) -> Action:
    """Chooses between a fresh run and reuse of the cached result.

    `frames_since_detect` is advanced by one for the frame being decided, so
    with `skip_frames = N` the N-1 frames after a fresh run reuse and the
    N-th runs fresh again.
    """
    if state is None or not video_optimized or policy.skip_frames == 0:
        return Action.RUN_FRESH
    if state.frames_since_detect + 1 >= policy.skip_frames:
        return Action.RUN_FRESH
    if state.last_was_empty and policy.skip_initial:
        return Action.RUN_FRESH
    return Action.REUSE_CACHE


def after_fresh(results: Sequence[Any]) -> SkipState:
    if results:
        return SkipState(frames_since_detect=0, last_was_empty=False, cached=tuple(results))
    return SkipState(frames_since_detect=0, last_was_empty=True, cached=())


def after_reuse(state: SkipState) -> SkipState:
    return replace(state, frames_since_detect=state.frames_since_detect + 1)


@dataclass
class StateChanges:
    """Successor states staged by one role during one frame."""

    role: Role
    updates: Dict[StateKey, SkipState] = field(default_factory=dict)
    live_instances: Optional[Set[InstanceID]] = None

    def stage(self, key: StateKey, state: SkipState) -> None:
        if key.role is not self.role:
            raise ValueError(f"{key} does not belong to role {self.role.value}")
        self.updates[key] = state

    def retain_instances(self, instance_ids: Iterable[InstanceID]) -> None:
        """Marks every other per-instance slot of this role for removal on commit."""
        self.live_instances = set(instance_ids)


class SkipStateStore:
    """Keyed container of skip states owned by a session."""

    def __init__(self) -> None:
        self._states: Dict[StateKey, SkipState] = {}

    def get(self, key: StateKey) -> Optional[SkipState]:
        return self._states.get(key)

    def commit(self, changes: StateChanges) -> None:
        if changes.live_instances is not None:
            stale = [
                key for key in self._states
                if key.role is changes.role
                and key.instance_id is not None
                and key.instance_id not in changes.live_instances
            ]
            for key in stale:
                del self._states[key]
        self._states.update(changes.updates)

    def clear(self) -> None:
        self._states.clear()

    def keys(self) -> List[StateKey]:
        return list(self._states)

    def __len__(self) -> int:
        return len(self._states)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Plain-dict view for debugging; cached values are summarised by count."""
        return {
            str(key): {
                "frames_since_detect": state.frames_since_detect,
                "last_was_empty": state.last_was_empty,
                "cached": len(state.cached),
            }
            for key, state in self._states.items()
        }
