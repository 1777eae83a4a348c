"""Kalman-filtered multi-object tracking with a line-crossing counter."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np

from .board import DEFAULT_BOARD_NAME_PATH, enforce_authorization

MAX_MATCH_DISTANCE = 500.0
MAX_TIME_SINCE_UPDATE = 1000
COUNT_DX_THRESHOLD = -100.0
COUNTED_CLASSES = (0, 3)

UNKNOWN = "Unknown"
LEFT = "Left"
RIGHT = "Right"


def _position(vector: Iterable[float]) -> np.ndarray:
    """Return the first two components of a detection as a float vector."""
    arr = np.asarray(vector, dtype=float).reshape(-1)
    if arr.size < 2:
        raise ValueError("a detection needs at least two components (x, y)")
    return arr[:2].copy()


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle; the right and bottom edges are exclusive."""

    x: int
    y: int
    width: int
    height: int

    def contains(self, x: float, y: float) -> bool:
        """Return True when the point lies inside the rectangle."""
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height


class KalmanFilter:
    """Constant-velocity filter over the state (x, y, vx, vy)."""

    def __init__(self) -> None:
        self.F = np.eye(4)
        self.F[0, 2] = 1.0
        self.F[1, 3] = 1.0
        self.H = np.zeros((2, 4))
        self.H[0, 0] = 1.0
        self.H[1, 1] = 1.0
        self.Q = np.eye(4) * 0.1
        self.R = np.eye(2) * 0.01
        self.P = np.eye(4) * 100.0
        self.x = np.zeros(4)

    def predict(self) -> None:
        """Advance the state by one time step."""
        self.x = self.F @ self.x
        self.P = self.F @ self.P @ self.F.T + self.Q

    def update(self, z: Iterable[float]) -> None:
        """Correct the state with a position measurement."""
        measurement = _position(z)
        y = measurement - self.H @ self.x
        S = self.H @ self.P @ self.H.T + self.R
        K = self.P @ self.H.T @ np.linalg.inv(S)
        self.x = self.x + K @ y
        self.P = (np.eye(4) - K @ self.H) @ self.P


class Track:
    """One tracked object: its filter, identity and region crossing state."""

    _ids = itertools.count()

    def __init__(self, detection: Iterable[float], cls_id: int) -> None:
        self.kf = KalmanFilter()
        self.kf.x[:2] = _position(detection)
        self.id = next(Track._ids)
        self.age = 0
        self.time_since_update = 0
        self.has_entered_region = False
        self.has_left_region = False
        self.entry_position = np.zeros(2)
        self.exit_position = np.zeros(2)
        self.prev_position = np.asarray(detection, dtype=float).reshape(-1).copy()
        self.cls_id = cls_id
        self.count_incremented = False

    def predict(self) -> None:
        """Advance the filter and age the track by one frame."""
        self.kf.predict()
        self.age += 1
        self.time_since_update += 1

    def update(self, detection: Iterable[float]) -> None:
        """Correct the track with a matched detection."""
        self.prev_position = self.kf.x[:2].copy()
        self.kf.update(detection)
        self.time_since_update = 0

    def get_state(self) -> np.ndarray:
        """Return the estimated position (x, y)."""
        return self.kf.x[:2].copy()

    def movement_direction(self) -> str:
        """Return "Left" or "Right" once the track has crossed the region."""
        if not self.has_entered_region or not self.has_left_region:
            return UNKNOWN
        dx = self.exit_position[0] - self.entry_position[0]
        return RIGHT if dx > 0 else LEFT


def hungarian_matching(
    detections: Sequence[Iterable[float]], tracks: Sequence[Track]
) -> list[tuple[int, int]]:
    """Greedily pair each detection with the nearest free track.

    Returns (detection index, track index) pairs; a pair is made only when
    the distance is below the matching limit.
    """
    matches: list[tuple[int, int]] = []
    taken = [False] * len(tracks)
    states = [track.get_state() for track in tracks]
    for det_index, detection in enumerate(detections):
        position = _position(detection)
        best_index = -1
        best_distance = float("inf")
        for track_index, state in enumerate(states):
            if taken[track_index]:
                continue
            distance = float(np.linalg.norm(position - state))
            if distance < best_distance:
                best_distance = distance
                best_index = track_index
        if best_index != -1 and best_distance < MAX_MATCH_DISTANCE:
            matches.append((det_index, best_index))
            taken[best_index] = True
    return matches


class BoTSORTTracker:
    """Keeps tracks across frames and counts right-to-left region exits.

    Construction fails with AuthorizationError on an unsupported board.
    """

    def __init__(self, board_path: str | Path = DEFAULT_BOARD_NAME_PATH) -> None:
        enforce_authorization(board_path)
        self._tracks: list[Track] = []
        self._object_count = 0
        self._last_direction = UNKNOWN
        self._class_counts = [0, 0]

    @property
    def tracks(self) -> tuple[Track, ...]:
        """The live tracks."""
        return tuple(self._tracks)

    @property
    def object_count(self) -> int:
        """Objects counted so far."""
        return self._object_count

    @property
    def last_direction(self) -> str:
        """Direction of the most recently counted object."""
        return self._last_direction

    @property
    def class_counts(self) -> tuple[int, int]:
        """Counts for class 0 and class 3."""
        return (self._class_counts[0], self._class_counts[1])

    def update(
        self,
        detections: Sequence[Iterable[float]],
        cls_ids: Sequence[int],
        region: Rect,
    ) -> None:
        """Feed one frame of detections and their class ids."""
        for track in self._tracks:
            track.predict()

        matches = hungarian_matching(detections, self._tracks)
        matched = set()
        for det_index, track_index in matches:
            matched.add(det_index)
            track = self._tracks[track_index]
            track.update(detections[det_index])
            position = track.get_state()
            px, py = int(position[0]), int(position[1])
            if region.contains(px, py):
                if not track.has_entered_region:
                    track.has_entered_region = True
                    track.entry_position = position
            elif track.has_entered_region and not track.has_left_region:
                track.has_left_region = True
                track.exit_position = position

        for det_index, detection in enumerate(detections):
            if det_index not in matched:
                self._tracks.append(Track(detection, cls_ids[det_index]))

        self._tracks = [
            t for t in self._tracks if t.time_since_update <= MAX_TIME_SINCE_UPDATE
        ]

        for track in self._tracks:
            if (
                track.has_entered_region
                and track.has_left_region
                and not track.count_incremented
            ):
                dx = track.exit_position[0] - track.entry_position[0]
                if dx < COUNT_DX_THRESHOLD and track.cls_id in COUNTED_CLASSES:
                    self._object_count += 1
                    self._class_counts[0 if track.cls_id == 0 else 1] += 1
                    track.count_incremented = True
                    self._last_direction = LEFT

    def reset_counters(self) -> None:
        """Zero the counters and let every track be counted again."""
        self._object_count = 0
        self._last_direction = UNKNOWN
        self._class_counts = [0, 0]
        for track in self._tracks:
            track.count_incremented = False