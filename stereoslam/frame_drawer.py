"""Tracking overlay: what to draw on the current frame and the status line."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Sequence

from .frame import KeyPoint

_MARK_HALF_SIZE = 5.0


class TrackingState(IntEnum):
    """States of the tracker, as shown by the drawer."""

    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


def status_text(
    state, only_tracking: bool, keyframes: int, map_points: int, tracked: int, tracked_vo: int
) -> str:
    """The status line shown under the frame for a tracking state."""
    state = TrackingState(state)
    if state is TrackingState.NO_IMAGES_YET:
        return " WAITING FOR IMAGES"
    if state is TrackingState.NOT_INITIALIZED:
        return " TRYING TO INITIALIZE "
    if state is TrackingState.OK:
        text = "LOCALIZATION | " if only_tracking else "SLAM MODE |  "
        text += f"KFs: {keyframes}, MPs: {map_points}, Matches: {tracked}"
        if tracked_vo > 0:
            text += f", + VO matches: {tracked_vo}"
        return text
    if state is TrackingState.LOST:
        return " TRACK LOST. TRYING TO RELOCALIZE "
    return " LOADING ORB VOCABULARY. PLEASE WAIT..."


@dataclass(frozen=True)
class TrackedMark:
    """A tracked keypoint; ``in_map`` separates map matches from odometry ones."""

    x: float
    y: float
    in_map: bool

    @property
    def box(self) -> tuple[float, float, float, float]:
        r = _MARK_HALF_SIZE
        return (self.x - r, self.y - r, self.x + r, self.y + r)


@dataclass
class FrameSnapshot:
    """Everything needed to draw one frame of the overlay."""

    state: TrackingState
    keys: list[KeyPoint]
    lines: list[tuple[tuple[float, float], tuple[float, float]]] = field(default_factory=list)
    marks: list[TrackedMark] = field(default_factory=list)
    tracked: int = 0
    tracked_vo: int = 0


class FrameDrawer:
    """Holds the last tracking result and turns it into drawing data."""

    def __init__(self):
        self._lock = threading.Lock()
        self.state = TrackingState.SYSTEM_NOT_READY
        self._drawn_state = TrackingState.SYSTEM_NOT_READY
        self.keys: list[KeyPoint] = []
        self.initial_keys: list[KeyPoint] = []
        self.initial_matches: list[int] = []
        self.vo: list[bool] = []
        self.in_map: list[bool] = []
        self.only_tracking = False
        self.tracked = 0
        self.tracked_vo = 0

    def update(
        self,
        state,
        keys: Sequence[KeyPoint],
        map_flags: Optional[Sequence[Optional[int]]] = None,
        outliers: Optional[Sequence[bool]] = None,
        only_tracking: bool = False,
        initial_keys: Optional[Sequence[KeyPoint]] = None,
        initial_matches: Optional[Sequence[int]] = None,
    ) -> None:
        """Store a tracking result.

        ``map_flags`` gives, per keypoint, the observation count of its map
        point or None when it has none.
        """
        state = TrackingState(state)
        with self._lock:
            self.keys = list(keys)
            n = len(self.keys)
            self.vo = [False] * n
            self.in_map = [False] * n
            self.only_tracking = only_tracking

            if state is TrackingState.NOT_INITIALIZED:
                self.initial_keys = list(initial_keys or [])
                self.initial_matches = list(initial_matches or [])
            elif state is TrackingState.OK:
                flags = list(map_flags) if map_flags is not None else [None] * n
                outs = list(outliers) if outliers is not None else [False] * n
                for i, (observations, outlier) in enumerate(zip(flags, outs)):
                    if observations is None or outlier:
                        continue
                    if observations > 0:
                        self.in_map[i] = True
                    else:
                        self.vo[i] = True
            self.state = state

    def snapshot(self) -> FrameSnapshot:
        """Drawing data for the stored result; counts the tracked matches."""
        keys: list[KeyPoint] = []
        initial_keys: list[KeyPoint] = []
        matches: list[int] = []
        vo: list[bool] = []
        in_map: list[bool] = []
        with self._lock:
            state = self.state
            if self.state is TrackingState.SYSTEM_NOT_READY:
                self.state = TrackingState.NO_IMAGES_YET
            if self.state is TrackingState.NOT_INITIALIZED:
                keys = list(self.keys)
                initial_keys = list(self.initial_keys)
                matches = list(self.initial_matches)
            elif self.state is TrackingState.OK:
                keys = list(self.keys)
                vo = list(self.vo)
                in_map = list(self.in_map)
            elif self.state is TrackingState.LOST:
                keys = list(self.keys)

        snap = FrameSnapshot(state=state, keys=keys)
        if state is TrackingState.NOT_INITIALIZED:
            for i, m in enumerate(matches):
                if m >= 0:
                    start = initial_keys[i]
                    end = keys[m]
                    snap.lines.append(((start.x, start.y), (end.x, end.y)))
        elif state is TrackingState.OK:
            self.tracked = 0
            self.tracked_vo = 0
            for kp, is_vo, is_map in zip(keys, vo, in_map):
                if not (is_vo or is_map):
                    continue
                snap.marks.append(TrackedMark(kp.x, kp.y, is_map))
                if is_map:
                    self.tracked += 1
                else:
                    self.tracked_vo += 1

        snap.tracked = self.tracked
        snap.tracked_vo = self.tracked_vo
        self._drawn_state = state
        return snap

    def text_info(self, keyframes: int, map_points: int) -> str:
        """Status line for the most recently drawn state."""
        return status_text(
            self._drawn_state,
            self.only_tracking,
            keyframes,
            map_points,
            self.tracked,
            self.tracked_vo,
        )