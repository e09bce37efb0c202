"""
Command-line entry point for the stroke digit recogniser.

Examples:
  stroke-digits recognize --strokes drawing.json --weights-dir weights/
  stroke-digits recognize --image drawing.png --classifier onnx --model digits.onnx --json
  stroke-digits demo 4071 --weights-dir weights/ --plot
  stroke-digits evaluate --samples 100 --weights-dir weights/
  stroke-digits check-deps
"""

from __future__ import annotations

import argparse
import importlib
import json
import os
import random
import sys
from dataclasses import replace
from typing import Optional, Sequence

from .aggregation import AggregateResult
from .capture import filter_strokes
from .config import RecognitionConfig, get_preset, load_config
from .errors import RecognitionError
from .evaluation import evaluate_samples, plot_confusion_matrix
from .pipeline import RecognitionPipeline
from .storage import load_binary_image, load_strokes
from .synthetic import synthesize_number


def build_config(args: argparse.Namespace) -> RecognitionConfig:
    config = get_preset(args.preset)
    if args.config:
        config = load_config(args.config, base=config)
    classifier = config.classifier
    classifier = replace(
        classifier,
        kind=args.classifier or classifier.kind,
        weights_dir=args.weights_dir or classifier.weights_dir,
        model_path=args.model or classifier.model_path,
    )
    return replace(config, classifier=classifier, include_diagnostics=args.diagnostics or config.include_diagnostics)


def print_result(result: AggregateResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return
    if not result.per_group:
        print("No digits detected")
        return
    print(f"Recognized number: {result.text}")
    print(f"Average confidence: {result.average_confidence:.3f} "
          f"({result.low_confidence_count} low, {result.failure_count} failed, "
          f"{result.processing_time_ms:.1f} ms)")
    print("Individual predictions:")
    for i, group in enumerate(result.per_group):
        digit = "?" if group.failed else str(group.predicted_digit)
        flag = " (low confidence)" if group.is_low_confidence else ""
        extra = f" - {group.error}" if group.error else ""
        print(f"  Digit {i + 1}: {digit} (confidence: {group.confidence:.3f}){flag}{extra}")


def cmd_recognize(args: argparse.Namespace) -> int:
    config = build_config(args)
    pipeline = RecognitionPipeline(config).load()
    if args.strokes:
        strokes, (canvas_width, _) = load_strokes(args.strokes)
        strokes = filter_strokes(strokes, config.segmentation)
        result = pipeline.recognize_strokes(strokes, canvas_width or None)
    else:
        mask = load_binary_image(args.image, alpha_threshold=args.alpha_threshold)
        result = pipeline.recognize_raster(mask)
    print_result(result, args.json)
    if args.plot:
        from .visualize import visualize_groups

        visualize_groups([r.group for r in result.per_group], result, pipeline.normalizer)
    return 0


def cmd_demo(args: argparse.Namespace) -> int:
    config = build_config(args)
    pipeline = RecognitionPipeline(config).load()
    strokes, (canvas_width, _) = synthesize_number(args.text, jitter=args.jitter, seed=args.seed)
    result = pipeline.recognize_strokes(strokes, canvas_width)
    print(f"Expected: {args.text}")
    print_result(result, args.json)
    if args.plot:
        from .visualize import visualize_groups

        visualize_groups([r.group for r in result.per_group], result, pipeline.normalizer)
    return 0 if result.text == args.text else 1


def cmd_evaluate(args: argparse.Namespace) -> int:
    config = build_config(args)
    pipeline = RecognitionPipeline(config).load()
    rng = random.Random(args.seed)
    samples = []
    for n in range(args.samples):
        text = "".join(str(rng.randint(0, 9)) for _ in range(rng.randint(1, args.max_digits)))
        strokes, (canvas_width, _) = synthesize_number(text, jitter=args.jitter, seed=args.seed + n)
        samples.append((strokes, canvas_width, text))
    report = evaluate_samples(pipeline, samples, progress=not args.json)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(f"Exact match rate: {report.exact_match_rate:.3f} over {report.samples} samples")
        print(f"Digit accuracy: {report.digit_accuracy:.3f}")
        print(f"Segmentation errors: {report.segmentation_errors}")
        print(report.report)
    if args.plot:
        plot_confusion_matrix(report)
    return 0


def check_dependencies() -> bool:
    """Report which third-party packages can be imported."""
    required = ["numpy", "cv2", "PIL", "matplotlib", "seaborn", "sklearn", "tqdm", "colorlog", "dotenv"]
    optional = ["onnxruntime", "tensorflow"]
    missing = []
    for package in required + optional:
        try:
            importlib.import_module(package)
            print(f"✓ {package}")
        except ImportError:
            marker = "optional" if package in optional else "MISSING"
            print(f"✗ {package} - {marker}")
            if package in required:
                missing.append(package)
    if missing:
        print(f"\nMissing packages: {missing}")
        print("Please install missing packages using: pip install <package_name>")
        return False
    print("\nAll required dependencies are installed!")
    return True


def _add_model_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--classifier", choices=["perceptron", "onnx", "keras"], default=None,
                        help="Classifier to use (default: from config, else perceptron)")
    parser.add_argument("--weights-dir", help="Directory holding theta1.json and theta2.json")
    parser.add_argument("--model", help="Path to an ONNX or Keras model file")
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--preset", default="default", help="Configuration preset (default, strict)")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--diagnostics", action="store_true", help="Include canonical images as data URLs")
    parser.add_argument("--plot", action="store_true", help="Show groups and canonical images")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stroke-digits", description="Handwritten digit recognition from strokes")
    sub = parser.add_subparsers(dest="command")

    recognize = sub.add_parser("recognize", help="Recognise digits in a stroke file or image")
    source = recognize.add_mutually_exclusive_group(required=True)
    source.add_argument("--strokes", help="Stroke recording (.json)")
    source.add_argument("--image", help="Drawing image (.png with alpha, or dark ink on light paper)")
    recognize.add_argument("--alpha-threshold", type=int, default=0, help="Alpha above this value is ink")
    _add_model_options(recognize)
    recognize.set_defaults(func=cmd_recognize)

    demo = sub.add_parser("demo", help="Draw a number with synthetic strokes and recognise it")
    demo.add_argument("text", help="Digits to draw, e.g. 4071")
    demo.add_argument("--jitter", type=float, default=0.0, help="Per-sample noise as a fraction of digit height")
    demo.add_argument("--seed", type=int, default=0)
    _add_model_options(demo)
    demo.set_defaults(func=cmd_demo)

    evaluate = sub.add_parser("evaluate", help="Measure accuracy on synthetic numbers")
    evaluate.add_argument("--samples", type=int, default=50)
    evaluate.add_argument("--max-digits", type=int, default=4)
    evaluate.add_argument("--jitter", type=float, default=0.01)
    evaluate.add_argument("--seed", type=int, default=0)
    _add_model_options(evaluate)
    evaluate.set_defaults(func=cmd_evaluate)

    deps = sub.add_parser("check-deps", help="Check that dependencies are installed")
    deps.set_defaults(func=lambda _args: 0 if check_dependencies() else 1)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2
    for path_arg in ("strokes", "image", "config"):
        path = getattr(args, path_arg, None)
        if path and not os.path.exists(path):
            print(f"Error: file {path} not found")
            return 2
    try:
        return args.func(args)
    except (RecognitionError, ValueError, ImportError, FileNotFoundError) as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
