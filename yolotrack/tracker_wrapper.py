"""Feed detector output to the tracker and read the tracks back."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .board import DEFAULT_BOARD_NAME_PATH, AuthorizationError
from .postprocess import DetectResult
from .tracking import BoTSORTTracker, Rect
from .utils import safe_print

MIN_CONFIDENCE = 0.25
MIN_BOX_SIZE = 20
DEFAULT_TRACK_WIDTH = 50
DEFAULT_TRACK_HEIGHT = 100
DEFAULT_TRACK_CONFIDENCE = 0.9

FrameSize = tuple[int, int]
TrackerInput = tuple[int, int, int, int]


@dataclass(frozen=True)
class TrackResult:
    """One tracked object, in a form ready for drawing."""

    track_id: int
    bbox: Rect
    cls_id: int
    confidence: float


class TrackerWrapper:
    """Owns a tracker and converts between detector and tracker formats.

    ``frame_size`` arguments are ``(width, height)`` pairs.
    """

    def __init__(self, board_path: str | Path = DEFAULT_BOARD_NAME_PATH) -> None:
        self._board_path = board_path
        self._tracker: BoTSORTTracker | None = None
        self.max_age = 30
        self.min_hits = 3
        self.iou_threshold = 0.3

    @property
    def is_initialized(self) -> bool:
        """Whether :meth:`init` has succeeded."""
        return self._tracker is not None

    @property
    def tracker(self) -> BoTSORTTracker:
        """The underlying tracker; only available after :meth:`init`."""
        return self._require("tracker")

    def _require(self, action: str) -> BoTSORTTracker:
        if self._tracker is None:
            raise RuntimeError(f"TrackerWrapper: {action} used before init")
        return self._tracker

    def init(
        self, max_age: int = 30, min_hits: int = 3, iou_threshold: float = 0.3
    ) -> bool:
        """Create the tracker; return False when the board is not supported."""
        self.max_age = max_age
        self.min_hits = min_hits
        self.iou_threshold = iou_threshold
        try:
            self._tracker = BoTSORTTracker(self._board_path)
        except AuthorizationError as exc:
            safe_print("[TrackerWrapper] Error during initialization: %s", exc)
            self._tracker = None
            return False
        safe_print(
            "[TrackerWrapper] Initialized (max_age: %d, min_hits: %d, iou_threshold: %.2f)",
            max_age,
            min_hits,
            iou_threshold,
        )
        return True

    def update(self, det_results: Sequence[DetectResult], frame_size: FrameSize) -> None:
        """Feed one frame of detections to the tracker."""
        tracker = self._require("update")
        detections, cls_ids, _ = self.convert_detections(det_results, frame_size)
        width, height = frame_size
        tracker.update(detections, cls_ids, Rect(0, 0, width, height))
        safe_print(
            "[TrackerWrapper] Updated with %d valid detections (total input: %d)",
            len(detections),
            len(det_results),
        )

    def get_track_results(self) -> list[TrackResult]:
        """Return every live track with a fixed-size box around its centre."""
        tracker = self._require("get_track_results")
        results: list[TrackResult] = []
        for track in tracker.tracks:
            state = track.get_state()
            if state.size < 2:
                safe_print("[TrackerWrapper] Invalid track state size: %d", state.size)
                continue
            center_x = int(state[0])
            center_y = int(state[1])
            bbox = Rect(
                center_x - DEFAULT_TRACK_WIDTH // 2,
                center_y - DEFAULT_TRACK_HEIGHT // 2,
                DEFAULT_TRACK_WIDTH,
                DEFAULT_TRACK_HEIGHT,
            )
            results.append(
                TrackResult(
                    track_id=track.id,
                    bbox=bbox,
                    cls_id=track.cls_id,
                    confidence=DEFAULT_TRACK_CONFIDENCE,
                )
            )
        safe_print("[TrackerWrapper] Got %d valid track results", len(results))
        return results

    def convert_detections(
        self, det_results: Sequence[DetectResult], frame_size: FrameSize
    ) -> tuple[list[TrackerInput], list[int], list[float]]:
        """Keep confident, valid detections as (cx, cy, w, h) tracker input.

        Returns the tracker inputs, their class ids and their confidences.
        """
        detections: list[TrackerInput] = []
        cls_ids: list[int] = []
        confidences: list[float] = []
        for det in det_results:
            if not self.is_valid_detection(det, frame_size) or det.prop < MIN_CONFIDENCE:
                continue
            box = det.box
            detections.append(
                (
                    (box.left + box.right) // 2,
                    (box.top + box.bottom) // 2,
                    box.right - box.left,
                    box.bottom - box.top,
                )
            )
            cls_ids.append(det.cls_id)
            confidences.append(det.prop)
        safe_print(
            "[TrackerWrapper] Converted %d valid detections (total input: %d)",
            len(detections),
            len(det_results),
        )
        return detections, cls_ids, confidences

    def is_valid_detection(self, det: DetectResult, frame_size: FrameSize) -> bool:
        """Return True when the box lies in the frame and is large enough."""
        width, height = frame_size
        box = det.box
        if box.left < 0 or box.top < 0 or box.right > width or box.bottom > height:
            return False
        return (
            box.right - box.left >= MIN_BOX_SIZE
            and box.bottom - box.top >= MIN_BOX_SIZE
        )