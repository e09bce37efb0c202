"""
Tests for configuration, stroke capture, scheduling and file formats.
"""

import dataclasses
import json
import os
import shutil
import sys
import tempfile
import threading
import time
import unittest

import numpy as np
from PIL import Image

# Add src directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from stroke_digits.capture import StrokeSession, filter_strokes
from stroke_digits.config import (
    ClassifierConfig,
    RecognitionConfig,
    SchedulerConfig,
    SegmentationConfig,
    config_from_dict,
    get_preset,
    load_config,
)
from stroke_digits.errors import ConfigurationError, StrokeFormatError
from stroke_digits.geometry import Point
from stroke_digits.ink import Stroke
from stroke_digits.logger import get_logger, log_execution_time
from stroke_digits.scheduler import RecognitionScheduler
from stroke_digits.storage import load_binary_image, load_strokes, save_strokes, strokes_from_samples
from stroke_digits.synthetic import synthesize_number


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class TestConfig(unittest.TestCase):
    """Test configuration records and presets"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write(self, payload):
        path = os.path.join(self.temp_dir, "config.json")
        with open(path, "w") as handle:
            json.dump(payload, handle)
        return path

    def test_defaults(self):
        """Test the default tuning"""
        config = RecognitionConfig()
        self.assertEqual(config.segmentation.connectivity_threshold, 0.6)
        self.assertEqual(config.segmentation.max_strokes_per_group, 4)
        self.assertEqual(config.segmentation.aspect_ratio_range, (0.3, 3.0))
        self.assertEqual(config.connectivity.weights, (0.30, 0.10, 0.40, 0.15, 0.05))
        self.assertEqual(config.scheduler.delay_ms, 500)
        self.assertEqual(config.low_confidence_threshold, 0.7)

    def test_validation(self):
        """Test out-of-range values raise ConfigurationError"""
        with self.assertRaises(ConfigurationError):
            SegmentationConfig(connectivity_threshold=1.5)
        with self.assertRaises(ValueError):
            SegmentationConfig(aspect_ratio_range=(3.0, 0.3))
        with self.assertRaises(ConfigurationError):
            SchedulerConfig(policy="latest")
        with self.assertRaises(ConfigurationError):
            ClassifierConfig(kind="svm")

    def test_frozen(self):
        """Test records cannot be modified in place"""
        config = RecognitionConfig()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.low_confidence_threshold = 0.1

    def test_presets(self):
        """Test the strict preset and unknown names"""
        strict = get_preset("strict")
        self.assertEqual(strict.segmentation.max_strokes_per_group, 1)
        self.assertEqual(strict.connectivity.proximity_threshold, 5.0)
        with self.assertRaises(ConfigurationError):
            get_preset("loose")

    def test_load_config(self):
        """Test a JSON file overlays a preset"""
        path = self.write({
            "preset": "strict",
            "scheduler": {"delay_ms": 300, "policy": "drop"},
            "segmentation": {"aspect_ratio_range": [0.4, 2.0]},
            "failure_placeholder": "?",
        })
        config = load_config(path)
        self.assertEqual(config.segmentation.max_strokes_per_group, 1)
        self.assertEqual(config.segmentation.aspect_ratio_range, (0.4, 2.0))
        self.assertEqual(config.scheduler.policy, "drop")
        self.assertEqual(config.failure_placeholder, "?")

    def test_unknown_keys(self):
        """Test typos are reported"""
        with self.assertRaises(ConfigurationError):
            config_from_dict({"segmentation": {"threshold": 0.5}})
        with self.assertRaises(ConfigurationError):
            config_from_dict({"colour": "red"})
        with self.assertRaises(ConfigurationError):
            load_config(os.path.join(self.temp_dir, "missing.json"))


class TestStrokeCapture(unittest.TestCase):
    """Test the stroke capture session"""

    def draw(self, session, coords):
        session.begin_stroke(Point(*coords[0]))
        for xy in coords[1:]:
            session.add_point(Point(*xy))
        return session.end_stroke()

    def test_accepts_intentional_strokes(self):
        """Test a real stroke is kept"""
        session = StrokeSession()
        stroke = self.draw(session, [(0, 0), (10, 10), (20, 20)])
        self.assertIsNotNone(stroke)
        self.assertEqual(session.stroke_count, 1)
        self.assertFalse(session.is_drawing)

    def test_discards_taps(self):
        """Test too few points or too short a path is dropped"""
        session = StrokeSession()
        self.assertIsNone(self.draw(session, [(0, 0), (30, 30)]))
        self.assertIsNone(self.draw(session, [(0, 0), (2, 2), (4, 4)]))
        self.assertEqual(session.stroke_count, 0)

    def test_undo_and_clear(self):
        """Test undo removes the last stroke and clear empties the session"""
        session = StrokeSession()
        self.draw(session, [(0, 0), (10, 10), (20, 20)])
        second = self.draw(session, [(50, 0), (60, 10), (70, 20)])
        self.assertIs(session.undo(), second)
        self.assertEqual(session.stroke_count, 1)
        session.clear()
        self.assertEqual(session.strokes, [])
        self.assertIsNone(session.undo())

    def test_notifies_scheduler(self):
        """Test accepted strokes start the debounce and clear cancels it"""
        scheduler = RecognitionScheduler(lambda: None, SchedulerConfig(delay_ms=10000))
        session = StrokeSession(scheduler=scheduler)
        self.draw(session, [(0, 0), (10, 10), (20, 20)])
        self.assertTrue(scheduler.pending)
        session.clear()
        self.assertFalse(scheduler.pending)
        scheduler.shutdown()

    def test_filter_strokes(self):
        """Test batch filtering of recorded strokes"""
        strokes = [
            Stroke.from_xy([(0, 0), (20, 0), (40, 0)]),
            Stroke.from_xy([(0, 0), (1, 1)]),
        ]
        self.assertEqual(filter_strokes(strokes), strokes[:1])


class TestScheduler(unittest.TestCase):
    """Test debounced recognition scheduling"""

    def test_debounce_coalesces_bursts(self):
        """Test a burst of input runs a single pass"""
        calls = []
        scheduler = RecognitionScheduler(lambda: calls.append(1) or len(calls),
                                         SchedulerConfig(delay_ms=50, min_interval_ms=0))
        for _ in range(5):
            scheduler.notify_input()
            time.sleep(0.005)
        self.assertTrue(wait_for(lambda: scheduler.pass_count == 1))
        time.sleep(0.15)
        self.assertEqual(len(calls), 1)
        self.assertEqual(scheduler.last_result, 1)
        scheduler.shutdown()

    def test_cancel(self):
        """Test a cancelled countdown never fires"""
        scheduler = RecognitionScheduler(lambda: None, SchedulerConfig(delay_ms=30, min_interval_ms=0))
        scheduler.notify_input()
        scheduler.cancel()
        time.sleep(0.1)
        self.assertEqual(scheduler.pass_count, 0)

    def test_flush(self):
        """Test flush runs immediately on the caller's thread"""
        results = []
        scheduler = RecognitionScheduler(lambda: "done", SchedulerConfig(delay_ms=10000),
                                         on_result=results.append)
        scheduler.notify_input()
        self.assertEqual(scheduler.flush(), "done")
        self.assertFalse(scheduler.pending)
        self.assertEqual(results, ["done"])

    def run_overlapping(self, policy):
        release = threading.Event()
        started = threading.Event()

        def slow_pass():
            started.set()
            release.wait(2.0)
            return "ok"

        scheduler = RecognitionScheduler(slow_pass, SchedulerConfig(delay_ms=0, policy=policy, min_interval_ms=0))
        worker = threading.Thread(target=scheduler.flush)
        worker.start()
        self.assertTrue(started.wait(2.0))
        self.assertIsNone(scheduler.flush())
        release.set()
        worker.join(2.0)
        return scheduler

    def test_drop_policy(self):
        """Test triggers during a pass are discarded"""
        scheduler = self.run_overlapping("drop")
        self.assertEqual(scheduler.pass_count, 1)

    def test_queue_policy(self):
        """Test triggers during a pass cause one re-run"""
        scheduler = self.run_overlapping("queue")
        self.assertEqual(scheduler.pass_count, 2)
        self.assertFalse(scheduler.running)

    def test_errors_reach_callback(self):
        """Test a failing pass is reported and does not wedge the scheduler"""
        errors = []

        def broken():
            raise RuntimeError("boom")

        scheduler = RecognitionScheduler(broken, SchedulerConfig(delay_ms=0, min_interval_ms=0),
                                         on_error=errors.append)
        scheduler.flush()
        scheduler.flush()
        self.assertEqual(len(errors), 2)
        self.assertEqual(scheduler.pass_count, 2)

    def test_failing_callbacks_do_not_stall(self):
        """Test raising callbacks leave the scheduler ready for the next pass"""
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return len(calls)

        def bad_callback(_value):
            raise ValueError("callback failed")

        scheduler = RecognitionScheduler(flaky, SchedulerConfig(delay_ms=0, min_interval_ms=0),
                                         on_result=bad_callback, on_error=bad_callback)
        self.assertIsNone(scheduler.flush())
        self.assertFalse(scheduler.running)
        self.assertEqual(scheduler.flush(), 2)
        self.assertFalse(scheduler.running)
        self.assertEqual(scheduler.flush(), 3)
        self.assertEqual(scheduler.pass_count, 3)

    def test_min_interval_postpones(self):
        """Test an early trigger waits out the minimum interval"""
        scheduler = RecognitionScheduler(lambda: None, SchedulerConfig(delay_ms=0, min_interval_ms=300))
        scheduler.flush()
        scheduler.notify_input()
        time.sleep(0.1)
        self.assertEqual(scheduler.pass_count, 1)
        self.assertTrue(wait_for(lambda: scheduler.pass_count == 2, timeout=2.0))
        scheduler.shutdown()

    def test_shutdown(self):
        """Test input after shutdown is ignored"""
        scheduler = RecognitionScheduler(lambda: None, SchedulerConfig(delay_ms=0, min_interval_ms=0))
        scheduler.shutdown()
        scheduler.notify_input()
        time.sleep(0.05)
        self.assertEqual(scheduler.pass_count, 0)


class TestStorage(unittest.TestCase):
    """Test stroke recordings and drawing images"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_stroke_file(self):
        """Test strokes survive a save and load"""
        strokes, canvas = synthesize_number("12")
        path = os.path.join(self.temp_dir, "nested", "strokes.json")
        save_strokes(path, strokes, canvas)
        loaded, size = load_strokes(path)
        self.assertEqual(size, canvas)
        self.assertEqual(len(loaded), len(strokes))
        self.assertEqual(loaded[0].points[0], strokes[0].points[0])

    def test_bare_list_and_defaults(self):
        """Test a bare list of [x, y] samples gets timestamps and a canvas"""
        path = os.path.join(self.temp_dir, "bare.json")
        with open(path, "w") as handle:
            json.dump([[[0, 0], [10, 5]], [[20, 0], [30, 9]]], handle)
        strokes, size = load_strokes(path)
        self.assertEqual(size, (31.0, 10.0))
        self.assertEqual(strokes[0].points[1].timestamp, 16)
        self.assertEqual(strokes[1].start_time, 32)
        self.assertEqual(strokes[0].points[0].pressure, 0.5)

    def test_bad_samples(self):
        """Test malformed samples raise StrokeFormatError"""
        with self.assertRaises(StrokeFormatError):
            strokes_from_samples([[[1]]])
        with self.assertRaises(StrokeFormatError):
            strokes_from_samples([[]])

    def test_binary_image(self):
        """Test transparent drawings use the alpha channel"""
        rgba = np.zeros((20, 30, 4), dtype=np.uint8)
        rgba[5:10, 5:15, 3] = 255
        path = os.path.join(self.temp_dir, "drawing.png")
        Image.fromarray(rgba).save(path)
        mask = load_binary_image(path)
        self.assertEqual(mask.shape, (20, 30))
        self.assertEqual(int(mask.sum()), 50)


class TestLogger(unittest.TestCase):
    """Test logging helpers"""

    def test_child_logger_name(self):
        """Test module loggers hang off the package logger"""
        self.assertEqual(get_logger("stroke_digits.pipeline").name, "stroke_digits.pipeline")

    def test_execution_time_decorator(self):
        """Test the timing decorator keeps the result and name"""
        @log_execution_time
        def add(a, b):
            return a + b

        self.assertEqual(add(2, 3), 5)
        self.assertEqual(add.__name__, "add")


if __name__ == "__main__":
    unittest.main()
