"""
System tests for the stroke digit recogniser
Tests the end-to-end pipeline, evaluation helpers and the command line
"""

import argparse
import contextlib
import io
import json
import os
import shutil
import sys
import tempfile
import threading
import time
import unittest
from unittest.mock import patch

import matplotlib
matplotlib.use("Agg")
import numpy as np

# Add src directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from stroke_digits.classifiers import CallableBackend, ExternalModelClassifier, PerceptronClassifier, clear_weight_cache
from stroke_digits.config import ClassifierConfig, RecognitionConfig
from stroke_digits.evaluation import evaluate_samples, plot_confusion_matrix
from stroke_digits.main import main as cli_main
from stroke_digits.pipeline import RecognitionPipeline
from stroke_digits.segmentation import Segmenter
from stroke_digits.storage import save_strokes
from stroke_digits.synthetic import synthesize_number
from stroke_digits.visualize import visualize_groups


def constant_engine(digit):
    """Backend that always answers ``digit`` with a wide margin."""
    def engine(batch):
        scores = np.zeros((batch.shape[0], 10), dtype=np.float32)
        scores[:, digit] = 12.0
        return scores
    return engine


def constant_classifier(digit, load=True):
    classifier = ExternalModelClassifier(CallableBackend(constant_engine(digit)))
    return classifier.load() if load else classifier


def biased_theta(digit):
    theta1 = np.zeros((785, 300))
    theta2 = np.zeros((301, 10))
    theta2[0, digit] = 5.0
    return theta1, theta2


class TestPipeline(unittest.TestCase):
    """Test end-to-end recognition"""

    def setUp(self):
        self.strokes, (self.canvas_width, _) = synthesize_number("43")
        self.pipeline = RecognitionPipeline(classifier=constant_classifier(1))

    def test_two_digit_number(self):
        """Test each character group yields one digit"""
        result = self.pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(result.text, "11")
        self.assertEqual(len(result.per_group), 2)
        self.assertGreater(result.average_confidence, 0.99)
        self.assertEqual(result.failure_count, 0)
        self.assertGreaterEqual(result.processing_time_ms, 0.0)

    def test_default_canvas_width(self):
        """Test a missing canvas width falls back to the default"""
        result = self.pipeline.recognize_strokes(self.strokes)
        self.assertEqual(result.text, "11")

    def test_empty_input(self):
        """Test no ink gives an empty result"""
        result = self.pipeline.recognize_strokes([])
        self.assertTrue(result.is_empty)
        self.assertEqual(result.text, "")
        self.assertEqual(result.average_confidence, 0.0)

    def test_classifier_not_ready(self):
        """Test every group fails cleanly before the model is loaded"""
        pipeline = RecognitionPipeline(classifier=constant_classifier(1, load=False))
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(result.text, "")
        self.assertEqual(result.failure_count, 2)
        for group in result.per_group:
            self.assertEqual(group.predicted_digit, -1)
            self.assertEqual(group.confidence, 0.0)
            self.assertTrue(group.is_low_confidence)
            self.assertIn("not loaded", group.error)

    def test_batch_failure_falls_back(self):
        """Test a failing batch is retried one group at a time"""
        def engine(batch):
            if batch.shape[0] > 1:
                raise RuntimeError("batching unsupported")
            return constant_engine(2)(batch)

        pipeline = RecognitionPipeline(classifier=ExternalModelClassifier(CallableBackend(engine)).load())
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(result.text, "22")
        self.assertEqual(result.failure_count, 0)

    def test_failure_is_isolated(self):
        """Test one failing group does not affect its neighbours"""
        calls = []

        def engine(batch):
            calls.append(batch.shape[0])
            if len(calls) == 2:
                raise RuntimeError("engine hiccup")
            return constant_engine(5)(batch)

        config = RecognitionConfig(classifier=ClassifierConfig(batch_inference=False))
        pipeline = RecognitionPipeline(config, ExternalModelClassifier(CallableBackend(engine)).load())
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(calls, [1, 1])
        self.assertEqual(result.text, "5")
        self.assertEqual(result.failure_count, 1)
        self.assertEqual(result.per_group[1].predicted_digit, -1)
        self.assertIn("engine hiccup", result.per_group[1].error)

    def test_nan_scores_mark_group_failed(self):
        """Test a group whose scores come back NaN fails with zero confidence"""
        def engine(batch):
            scores = constant_engine(6)(batch)
            if batch.shape[0] > 1:
                scores[-1, :] = np.nan
            return scores

        pipeline = RecognitionPipeline(classifier=ExternalModelClassifier(CallableBackend(engine)).load())
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(result.text, "66")
        self.assertEqual(result.failure_count, 0)

        config = RecognitionConfig(classifier=ClassifierConfig(batch_inference=False))
        calls = []

        def second_fails(batch):
            calls.append(1)
            scores = constant_engine(6)(batch)
            if len(calls) == 2:
                scores[:] = np.nan
            return scores

        pipeline = RecognitionPipeline(config, ExternalModelClassifier(CallableBackend(second_fails)).load())
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(result.text, "6")
        self.assertEqual(result.failure_count, 1)
        self.assertEqual(result.per_group[1].predicted_digit, -1)
        self.assertEqual(result.per_group[1].confidence, 0.0)
        self.assertAlmostEqual(result.average_confidence, result.per_group[0].confidence)

    def test_diagnostics(self):
        """Test canonical images are attached on request"""
        config = RecognitionConfig(include_diagnostics=True)
        pipeline = RecognitionPipeline(config, constant_classifier(1))
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        for group in result.per_group:
            self.assertTrue(group.image_data_url.startswith("data:image/png;base64,"))
        self.assertIsNone(self.pipeline.recognize_strokes(self.strokes).per_group[0].image_data_url)

    def test_raster_input(self):
        """Test recognition from a binary drawing"""
        mask = np.zeros((40, 100), dtype=bool)
        mask[10:30, 10:20] = True
        mask[10:30, 70:80] = True
        result = self.pipeline.recognize_raster(mask)
        self.assertEqual(result.text, "11")

    def test_perceptron_pipeline(self):
        """Test the embedded perceptron end to end"""
        theta1, theta2 = biased_theta(7)
        pipeline = RecognitionPipeline(classifier=PerceptronClassifier(theta1=theta1, theta2=theta2))
        pipeline.load_async().result(timeout=10)
        self.assertTrue(pipeline.is_ready)
        result = pipeline.recognize_strokes(self.strokes, self.canvas_width)
        self.assertEqual(result.text, "77")

    def test_concurrent_passes(self):
        """Test overlapping callers each get a complete result"""
        texts = []

        def worker():
            texts.append(self.pipeline.recognize_strokes(self.strokes, self.canvas_width).text)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)
        self.assertEqual(texts, ["11"] * 4)


class TestEvaluation(unittest.TestCase):
    """Test accuracy reporting and plots"""

    def setUp(self):
        self.pipeline = RecognitionPipeline(classifier=constant_classifier(1))

    def test_evaluate_samples(self):
        """Test exact-match and digit-level metrics"""
        samples = []
        for text in ("11", "43"):
            strokes, (width, _) = synthesize_number(text)
            samples.append((strokes, width, text))
        report = evaluate_samples(self.pipeline, samples, progress=False)
        self.assertEqual(report.samples, 2)
        self.assertEqual(report.exact_matches, 1)
        self.assertEqual(report.segmentation_errors, 0)
        self.assertAlmostEqual(report.digit_accuracy, 0.5)
        self.assertEqual(int(report.confusion[4, 1]), 1)
        self.assertIsNotNone(plot_confusion_matrix(report, return_fig=True))
        json.dumps(report.to_dict())

    def test_visualize_groups(self):
        """Test the grouping figure renders"""
        strokes, (width, _) = synthesize_number("43")
        groups = self.pipeline.segmenter.segment_strokes(strokes, width)
        result = self.pipeline.recognize_groups(groups)
        figure = visualize_groups(groups, result, self.pipeline.normalizer, return_fig=True)
        self.assertIsNotNone(figure)
        self.assertIsNone(visualize_groups([]))


class TestCommandLine(unittest.TestCase):
    """Test the stroke-digits command"""

    def setUp(self):
        clear_weight_cache()
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        clear_weight_cache()
        shutil.rmtree(self.temp_dir)

    def run_cli(self, argv):
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            code = cli_main(argv)
        return code, output.getvalue()

    def write_weights(self, digit):
        theta1, theta2 = biased_theta(digit)
        with open(os.path.join(self.temp_dir, "theta1.json"), "w") as handle:
            json.dump(theta1.tolist(), handle)
        with open(os.path.join(self.temp_dir, "theta2.json"), "w") as handle:
            json.dump(theta2.tolist(), handle)

    def test_missing_input_file(self):
        """Test a missing stroke file is reported"""
        code, output = self.run_cli(["recognize", "--strokes", os.path.join(self.temp_dir, "none.json")])
        self.assertEqual(code, 2)
        self.assertIn("not found", output)

    def test_missing_weights(self):
        """Test the perceptron needs a weights directory"""
        strokes, canvas = synthesize_number("4")
        path = os.path.join(self.temp_dir, "strokes.json")
        save_strokes(path, strokes, canvas)
        code, output = self.run_cli(["recognize", "--strokes", path])
        self.assertEqual(code, 1)
        self.assertIn("weights_dir", output)

    def test_recognize_json(self):
        """Test recognition of a stroke file with JSON output"""
        self.write_weights(7)
        strokes, canvas = synthesize_number("43")
        path = os.path.join(self.temp_dir, "strokes.json")
        save_strokes(path, strokes, canvas)
        code, output = self.run_cli(["recognize", "--strokes", path, "--weights-dir", self.temp_dir, "--json"])
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["text"], "77")
        self.assertEqual(len(payload["groups"]), 2)

    def test_demo(self):
        """Test the synthetic demo"""
        self.write_weights(7)
        code, output = self.run_cli(["demo", "77", "--weights-dir", self.temp_dir])
        self.assertEqual(code, 0)
        self.assertIn("Recognized number: 77", output)

    def test_plot_reuses_recognized_groups(self):
        """Test --plot draws the groups from the recognition pass without segmenting again"""
        self.write_weights(7)
        strokes, canvas = synthesize_number("43")
        path = os.path.join(self.temp_dir, "strokes.json")
        save_strokes(path, strokes, canvas)
        with patch("stroke_digits.visualize.visualize_groups") as draw, \
                patch.object(Segmenter, "segment", autospec=True, side_effect=Segmenter.segment) as segment:
            code, _ = self.run_cli(["recognize", "--strokes", path, "--weights-dir", self.temp_dir, "--plot"])
        self.assertEqual(code, 0)
        self.assertEqual(segment.call_count, 1)
        groups, result = draw.call_args[0][:2]
        self.assertEqual(len(groups), 2)
        for group, recognized in zip(groups, result.per_group):
            self.assertIs(group, recognized.group)

    def test_no_command(self):
        """Test running without a command prints help"""
        code, output = self.run_cli([])
        self.assertEqual(code, 2)
        self.assertIn("usage", output)


def run_performance_tests():
    """Run performance benchmarks"""
    print("Running Performance Tests...")
    print("="*50)

    strokes, (width, _) = synthesize_number("4071", jitter=0.01, seed=1)
    pipeline = RecognitionPipeline(classifier=constant_classifier(1))

    start_time = time.perf_counter()
    for _ in range(50):
        _ = pipeline.segmenter.segment_strokes(strokes, width)
    segmentation_time = (time.perf_counter() - start_time) / 50
    print(f"Average segmentation time: {segmentation_time * 1000:.2f} ms")

    groups = pipeline.segmenter.segment_strokes(strokes, width)
    start_time = time.perf_counter()
    for _ in range(50):
        _ = pipeline.normalizer.normalize_all(groups)
    normalization_time = (time.perf_counter() - start_time) / 50
    print(f"Average normalisation time: {normalization_time * 1000:.2f} ms")

    theta1, theta2 = biased_theta(0)
    perceptron = PerceptronClassifier(theta1=theta1, theta2=theta2).load()
    images = pipeline.normalizer.normalize_all(groups)
    start_time = time.perf_counter()
    for _ in range(100):
        _ = perceptron.infer_batch(images)
    inference_time = (time.perf_counter() - start_time) / 100
    print(f"Average perceptron batch time: {inference_time * 1000:.2f} ms")

    start_time = time.perf_counter()
    for _ in range(20):
        _ = pipeline.recognize_strokes(strokes, width)
    total_time = (time.perf_counter() - start_time) / 20
    print(f"Average end-to-end time: {total_time * 1000:.2f} ms")


def main():
    """Main test runner"""
    parser = argparse.ArgumentParser(description="Stroke digit system tests")
    parser.add_argument('--unit', action='store_true', help='Run unit tests')
    parser.add_argument('--performance', action='store_true', help='Run performance tests')
    parser.add_argument('--all', action='store_true', help='Run all tests')

    args = parser.parse_args()

    if args.performance or args.all:
        run_performance_tests()
        print()

    if args.unit or args.all or len(sys.argv) == 1:
        print("Running Unit Tests...")
        print("="*50)

        loader = unittest.TestLoader()
        suite = loader.loadTestsFromModule(sys.modules[__name__])
        runner = unittest.TextTestRunner(verbosity=2)
        result = runner.run(suite)

        print(f"\nTest Summary:")
        print(f"Tests run: {result.testsRun}")
        print(f"Failures: {len(result.failures)}")
        print(f"Errors: {len(result.errors)}")


if __name__ == "__main__":
    main()
