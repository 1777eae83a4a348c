# yolotrack

Post-processing and tracking for YOLOv8 detectors. It turns raw detection-head
tensors into boxes, suppresses overlapping boxes, follows objects from frame
to frame and counts those that leave a region moving right to left.

## Modules

### `yolotrack.quant`

- `sigmoid(x)` and `unsigmoid(y)`. `unsigmoid` raises `ValueError` outside
  the open interval (0, 1).
- `clip(val, low, high)` clamps a value and truncates it to an integer.
- `qnt_f32_to_affine(f32, zp, scale)` quantises to signed 8-bit.
  `qnt_f32_to_affine_u8(f32, zp, scale)` quantises to unsigned 8-bit.
- `deqnt_affine_to_f32(qnt, zp, scale)` dequantises a value.
- `compute_dfl(tensor, dfl_len)` decodes four box distances from
  `4 * dfl_len` distribution logits. It takes a softmax of each group and
  returns the expected bin index.

### `yolotrack.decode`

This module decodes one output branch into a list of `Candidate` boxes. Each
`Candidate` has `x`, `y`, `w`, `h`, `prob` and `cls_id`, in model-input pixels.

- `process_u8` handles unsigned 8-bit tensors in NCHW layout.
- `process_i8` handles signed 8-bit tensors in NCHW layout.
- `process_i8_nhwc` handles signed 8-bit tensors in NHWC layout.
- `process_fp32` handles float tensors in NCHW layout.

Tensors may be bytes-like objects, NumPy arrays or sequences. The optional
score-sum tensor lets cells below the threshold be skipped early. Pass `None`
when there is none. Tensors that are too short and grid sizes that are not
positive raise `ValueError`. The number of classes is `OBJ_CLASS_NUM` (80).

### `yolotrack.postprocess`

`post_process(branches, model_width, model_height, letterbox, conf_threshold, nms_threshold, is_quant)`
runs the full pipeline:

1. It decodes every `Branch`.
2. It sorts the candidates by confidence.
3. It runs per-class non-maximum suppression (`nms`, `calculate_overlap`).
4. It maps the boxes back through a `Letterbox` (`scale`, `x_pad`, `y_pad`).

It returns up to 128 `DetectResult` values, best first. Each has a `BoxRect`
box (`left`, `top`, `right`, `bottom`), `prop` and `cls_id`.

A `Branch` carries its tensors, grid size, `dfl_len` and quantisation
parameters. It also carries an `OutputFormat`: `INT8`, `UINT8` or
`INT8_NHWC`. NHWC outputs are accepted only when `is_quant` is true.

`LabelTable.load(path)` reads class names from a text file, one per line, and
keeps at most 80. `LabelTable.name(cls_id)` returns `"null"` for unknown ids.

### `yolotrack.tracking`

- `KalmanFilter` is a constant-velocity filter over (x, y, vx, vy).
- `Track` is one tracked object. It has an id, an age, region entry and exit
  positions, and `movement_direction()`.
- `hungarian_matching(detections, tracks)` pairs each detection greedily with
  the nearest free track. A pair is made only when the distance is below 500.
- `BoTSORTTracker.update(detections, cls_ids, region)`:
  - Predicts all tracks.
  - Matches detections to tracks and updates the matched ones.
  - Starts new tracks for unmatched detections.
  - Drops tracks not updated for more than 1000 frames.
  - Counts class 0 and class 3 objects that entered the `Rect` region and left
    it more than 100 pixels to the left of where they entered.

  Read the results through the `tracks`, `object_count`, `class_counts` and
  `last_direction` properties. `reset_counters()` clears the counts.

### `yolotrack.tracker_wrapper`

`TrackerWrapper` sits between the detector and the tracker:

- `init()` creates the tracker.
- `update(det_results, frame_size)` first applies
  `convert_detections` / `is_valid_detection`. A detection is kept only if it
  lies inside the `(width, height)` frame, is at least 20 pixels on each side
  and has a confidence of at least 0.25. Kept detections are fed to the tracker
  as `(cx, cy, w, h)`.
- `get_track_results()` returns a `TrackResult` for every live track, with a
  fixed 50×100 box around the track centre.

### `yolotrack.result_processor`

`ResultProcessor` draws onto a Pillow image. `init(thread_pool)` attaches the
pool that the drawing runs on. `process_and_draw(od_results, frame, tracker, fps_counter)`:

- Matches detections to track ids (`build_detection_track_map`).
- Draws each box with its class name, confidence and track id
  (`draw_single_detection`) on the `ThreadPool`.
- Adds an FPS and track-count overlay.
- Returns the frame resized to 1280×720.

### `yolotrack.thread_pool`, `yolotrack.utils`, `yolotrack.board`

- `ThreadPool(thread_count)` is a fixed-size worker pool. Its members:
  - `put(fn, *args, **kwargs)` returns a `concurrent.futures.Future`.
  - `get(future)` and `wait()` block until work is done.
  - `thread_count()` returns the number of workers.
  - `shutdown()` stops the workers.

  The pool can also be used as a context manager.
- `FPSCounter` gives a frame rate that is recomputed once per second.
  `safe_print(fmt, *args)` prints whole lines from several threads without
  mixing them. `get_current_ms()` and `print_time_cost(step_name, start_ms, end_ms)`
  measure and report timings.
- `read_board_name`, `check_board_model_support` and `enforce_authorization`
  check the board name file.

## Board check

`ThreadPool` and `BoTSORTTracker` check the board first. Both take a
`board_path` argument, which defaults to `/sys/ztl/board_name`. The first line
of that file must name a supported board: `A588`, `588`, `576`, `566`, `568`
or `562`. Otherwise both raise `yolotrack.board.AuthorizationError`.
`TrackerWrapper.init()` does not raise; it returns `False`.

## Example

```python
from yolotrack.tracking import BoTSORTTracker, Rect

tracker = BoTSORTTracker(board_path="/sys/ztl/board_name")
region = Rect(0, 0, 1280, 720)
tracker.update([(640.0, 360.0, 50.0, 100.0)], [0], region)
for track in tracker.tracks:
    print(track.id, track.get_state())
print(tracker.object_count, tracker.class_counts)
```

## What this package does not do

- It does not run a neural network. You supply the output tensors of a model
  yourself.
- It does not capture video from cameras or files.
- It has no command-line program.

## Installing

```
pip install yolotrack
pip install "yolotrack[test]"   # with the test dependencies
```