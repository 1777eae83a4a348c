"""Match detections to tracks and draw them onto the frame."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from .postprocess import DetectResult
from .thread_pool import ThreadPool
from .tracker_wrapper import TrackerWrapper
from .utils import FPSCounter, safe_print

MATCH_DISTANCE = 30
OUTPUT_SIZE = (1280, 720)

BOX_COLOR = (0, 0, 255)
LABEL_COLOR = (255, 0, 0)
FPS_COLOR = (0, 40, 90)
TRACKED_COLOR = (0, 255, 0)

COCO_CLASS_NAMES = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat",
    "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack",
    "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball",
    "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair",
    "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator",
    "book", "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
)


def _half(value: int) -> int:
    """Halve an integer, rounding toward zero."""
    return -((-value) // 2) if value < 0 else value // 2


class ResultProcessor:
    """Draws detections, their track ids and frame statistics."""

    def __init__(self) -> None:
        self._pool: ThreadPool | None = None
        self._draw_lock = threading.Lock()
        self._font = ImageFont.load_default()

    @property
    def is_initialized(self) -> bool:
        """Whether :meth:`init` has succeeded."""
        return self._pool is not None

    def init(self, thread_pool: ThreadPool | None) -> bool:
        """Attach the pool that drawing runs on; False when none is given."""
        if thread_pool is None:
            safe_print("ResultProcessor: thread pool is null")
            return False
        self._pool = thread_pool
        safe_print("ResultProcessor initialized")
        return True

    def process_and_draw(
        self,
        od_results: Sequence[DetectResult],
        frame: Image.Image,
        tracker: TrackerWrapper,
        fps_counter: FPSCounter,
    ) -> Image.Image:
        """Draw all detections and statistics; return the frame at output size."""
        if self._pool is None:
            raise RuntimeError("ResultProcessor: not initialized")
        if frame.width == 0 or frame.height == 0:
            raise ValueError("ResultProcessor: frame is empty")
        if frame.mode != "RGB":
            frame = frame.convert("RGB")

        detection_to_track = self.build_detection_track_map(od_results, tracker)
        draw = ImageDraw.Draw(frame)

        futures: list[Future] = []
        for index, det in enumerate(od_results):
            if not 0 <= det.cls_id < len(COCO_CLASS_NAMES):
                continue
            track_id = detection_to_track.get(index, -1)
            futures.append(self._pool.put(self.draw_single_detection, det, track_id, draw))
        for future in futures:
            try:
                future.result()
            except Exception as exc:
                safe_print("ResultProcessor: draw task exception: %s", exc)

        tracks = tracker.get_track_results()
        current_fps = fps_counter.get_current_fps()
        with self._draw_lock:
            draw.text((10, 30), "FPS: %.2f" % current_fps, fill=FPS_COLOR, font=self._font)
            draw.text((10, 80), "Tracked: %d" % len(tracks), fill=TRACKED_COLOR, font=self._font)

        return frame.resize(OUTPUT_SIZE, Image.Resampling.BICUBIC)

    def build_detection_track_map(
        self, od_results: Sequence[DetectResult], tracker: TrackerWrapper
    ) -> dict[int, int]:
        """Map detection indices to the id of the track whose centre is near.

        Each track takes the first unclaimed detection whose centre lies
        within a Manhattan distance below the matching limit.
        """
        mapping: dict[int, int] = {}
        for track in tracker.get_track_results():
            rect = track.bbox
            track_cx = rect.x + _half(rect.width)
            track_cy = rect.y + _half(rect.height)
            for index, det in enumerate(od_results):
                if index in mapping:
                    continue
                det_cx = _half(det.box.left + det.box.right)
                det_cy = _half(det.box.top + det.box.bottom)
                distance = abs(track_cx - det_cx) + abs(track_cy - det_cy)
                if distance < MATCH_DISTANCE:
                    mapping[index] = track.track_id
                    break
        return mapping

    def draw_single_detection(
        self, det: DetectResult, track_id: int, draw: ImageDraw.ImageDraw
    ) -> str:
        """Draw one box with its label and return the label text."""
        x1, y1, x2, y2 = det.box.left, det.box.top, det.box.right, det.box.bottom
        cls_name = COCO_CLASS_NAMES[det.cls_id]
        text_y = y1 - 20 if y1 - 20 > 0 else 20
        if track_id != -1:
            label = "ID:%d %s %.1f%%" % (track_id, cls_name, det.prop * 100)
        else:
            label = "%s %.1f%%" % (cls_name, det.prop * 100)

        with self._draw_lock:
            draw.rectangle((x1, y1, x2, y2), outline=BOX_COLOR, width=2)
            draw.text((x1, text_y), label, fill=LABEL_COLOR, font=self._font)

        if track_id != -1:
            safe_print(
                "ID:%d %s @ (%d, %d, %d, %d) Conf:%.3f",
                track_id, cls_name, x1, y1, x2, y2, det.prop,
            )
        else:
            safe_print(
                "%s @ (%d, %d, %d, %d) Conf:%.3f",
                cls_name, x1, y1, x2, y2, det.prop,
            )
        return label