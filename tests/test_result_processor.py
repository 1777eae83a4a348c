import pytest
from PIL import Image, ImageDraw

from yolotrack.postprocess import BoxRect, DetectResult
from yolotrack.result_processor import OUTPUT_SIZE, ResultProcessor
from yolotrack.thread_pool import ThreadPool
from yolotrack.tracker_wrapper import TrackerWrapper
from yolotrack.utils import FPSCounter

FRAME = (640, 480)


@pytest.fixture
def board_file(tmp_path):
    path = tmp_path / "board_name"
    path.write_text("588\n")
    return path


@pytest.fixture
def pool(board_file):
    p = ThreadPool(2, board_path=board_file)
    yield p
    p.shutdown()


@pytest.fixture
def processor(pool):
    proc = ResultProcessor()
    assert proc.init(pool) is True
    return proc


@pytest.fixture
def tracker(board_file):
    w = TrackerWrapper(board_path=board_file)
    assert w.init() is True
    return w


def det(left, top, right, bottom, prop=0.9, cls_id=0):
    return DetectResult(BoxRect(left, top, right, bottom), prop, cls_id)


def test_init_without_pool_fails():
    proc = ResultProcessor()
    assert proc.init(None) is False
    assert proc.is_initialized is False


def test_process_before_init_raises(tracker):
    proc = ResultProcessor()
    frame = Image.new("RGB", FRAME)
    with pytest.raises(RuntimeError):
        proc.process_and_draw([], frame, tracker, FPSCounter())


def test_process_empty_frame_raises(processor, tracker):
    with pytest.raises(ValueError):
        processor.process_and_draw([], Image.new("RGB", (0, 0)), tracker, FPSCounter())


def test_map_matches_near_detection_only(processor, tracker):
    results = [det(100, 100, 200, 300), det(400, 300, 450, 400)]
    tracker.update(results[:1], FRAME)
    track_id = tracker.get_track_results()[0].track_id
    mapping = processor.build_detection_track_map(results, tracker)
    assert mapping == {0: track_id}


def test_map_gives_track_to_first_close_detection(processor, tracker):
    tracker.update([det(100, 100, 200, 300)], FRAME)
    duplicates = [det(100, 100, 200, 300), det(100, 100, 200, 300)]
    mapping = processor.build_detection_track_map(duplicates, tracker)
    assert list(mapping) == [0]


def test_map_empty_without_tracks(processor, tracker):
    assert processor.build_detection_track_map([det(100, 100, 200, 300)], tracker) == {}


def test_draw_single_detection_with_track_id(processor):
    img = Image.new("RGB", (300, 300))
    label = processor.draw_single_detection(det(50, 60, 150, 200), 7, ImageDraw.Draw(img))
    assert label == "ID:7 person 90.0%"
    assert img.getpixel((50, 130)) == (0, 0, 255)


def test_draw_single_detection_without_track_id(processor):
    img = Image.new("RGB", (300, 300))
    label = processor.draw_single_detection(
        det(50, 60, 150, 200, prop=0.5, cls_id=2), -1, ImageDraw.Draw(img)
    )
    assert label == "car 50.0%"
    assert img.getpixel((150, 130)) == (0, 0, 255)


def test_process_and_draw_returns_output_size(processor, tracker):
    results = [det(100, 100, 200, 300)]
    tracker.update(results, FRAME)
    frame = Image.new("RGB", FRAME)
    out = processor.process_and_draw(results, frame, tracker, FPSCounter())
    assert out.size == OUTPUT_SIZE
    assert max(high for _, high in out.getextrema()) > 0


def test_process_and_draw_skips_unknown_class(processor, tracker):
    frame = Image.new("RGB", FRAME)
    processor.process_and_draw([det(300, 300, 400, 400, cls_id=80)], frame, tracker, FPSCounter())
    assert frame.getpixel((300, 350)) == (0, 0, 0)


def test_process_and_draw_draws_on_frame(processor, tracker):
    frame = Image.new("RGB", FRAME)
    processor.process_and_draw([det(300, 300, 400, 400)], frame, tracker, FPSCounter())
    assert frame.getpixel((300, 350)) == (0, 0, 255)