"""
Synthetic pen strokes for digits 0-9.

Each digit is a set of polyline templates drawn in a 0.6 x 1.0 box (y grows
downwards), in the order a person typically writes them. Templates are
scaled to a digit height, densified into evenly spaced samples with
timestamps, and optionally jittered with a seeded RNG so generated data is
reproducible.

Usage example:
  python -m stroke_digits.synthetic --text 4071 --out data/strokes_4071.json
"""

from __future__ import annotations

import argparse
import math
import random
from typing import Dict, List, Optional, Sequence, Tuple

from .geometry import Point
from .ink import Stroke
from .storage import save_strokes

Template = Sequence[Tuple[float, float]]

DIGIT_WIDTH_RATIO = 0.6
SAMPLE_INTERVAL_MS = 16
PEN_UP_MS = 180
DIGIT_PAUSE_MS = 450


def _ellipse(cx: float, cy: float, rx: float, ry: float, steps: int = 24) -> List[Tuple[float, float]]:
    # Starts at the top and runs anticlockwise on screen, like a written 0.
    return [
        (cx - rx * math.sin(2 * math.pi * k / steps), cy - ry * math.cos(2 * math.pi * k / steps))
        for k in range(steps + 1)
    ]


DIGIT_TEMPLATES: Dict[int, List[Template]] = {
    0: [_ellipse(0.3, 0.5, 0.3, 0.5)],
    1: [[(0.12, 0.18), (0.3, 0.0), (0.3, 1.0)]],
    2: [[(0.0, 0.2), (0.1, 0.05), (0.3, 0.0), (0.5, 0.05), (0.6, 0.2), (0.55, 0.4), (0.0, 1.0), (0.6, 1.0)]],
    3: [[(0.0, 0.1), (0.3, 0.0), (0.55, 0.1), (0.55, 0.35), (0.25, 0.5), (0.55, 0.62),
         (0.6, 0.85), (0.3, 1.0), (0.0, 0.9)]],
    4: [[(0.45, 0.0), (0.0, 0.65), (0.6, 0.65)], [(0.45, 0.0), (0.45, 1.0)]],
    5: [[(0.05, 0.0), (0.0, 0.45), (0.3, 0.4), (0.55, 0.55), (0.6, 0.8), (0.35, 1.0), (0.0, 0.92)],
        [(0.05, 0.0), (0.55, 0.0)]],
    6: [[(0.5, 0.0), (0.2, 0.25), (0.0, 0.6), (0.05, 0.9), (0.3, 1.0), (0.55, 0.9), (0.6, 0.7),
         (0.4, 0.55), (0.1, 0.6), (0.0, 0.7)]],
    7: [[(0.0, 0.0), (0.6, 0.0)], [(0.6, 0.0), (0.2, 1.0)], [(0.15, 0.5), (0.45, 0.5)]],
    8: [[(0.3, 0.5), (0.05, 0.3), (0.1, 0.05), (0.3, 0.0), (0.5, 0.05), (0.55, 0.3), (0.3, 0.5),
         (0.0, 0.75), (0.1, 0.95), (0.3, 1.0), (0.5, 0.95), (0.6, 0.75), (0.3, 0.5)]],
    9: [[(0.6, 0.3), (0.4, 0.45), (0.1, 0.4), (0.0, 0.2), (0.15, 0.02), (0.4, 0.0), (0.6, 0.2),
         (0.6, 0.6), (0.5, 1.0)]],
}


def densify(coords: Template, spacing: float) -> List[Tuple[float, float]]:
    """Resample a polyline so consecutive samples are at most ``spacing`` apart."""
    points = [coords[0]]
    for (x0, y0), (x1, y1) in zip(coords, coords[1:]):
        steps = max(1, int(math.ceil(math.hypot(x1 - x0, y1 - y0) / spacing)))
        for k in range(1, steps + 1):
            t = k / steps
            points.append((x0 + (x1 - x0) * t, y0 + (y1 - y0) * t))
    return points


def digit_strokes(
    digit: int,
    origin: Tuple[float, float] = (0.0, 0.0),
    height: float = 80.0,
    start_time: int = 0,
    jitter: float = 0.0,
    rng: Optional[random.Random] = None,
    spacing: float = 4.0,
) -> List[Stroke]:
    """Strokes of one digit with its top-left corner at ``origin``."""
    if digit not in DIGIT_TEMPLATES:
        raise ValueError(f"no template for digit {digit!r}")
    rng = rng or random.Random(0)
    ox, oy = origin
    clock = start_time
    strokes: List[Stroke] = []
    for template in DIGIT_TEMPLATES[digit]:
        scaled = [(ox + x * height, oy + y * height) for x, y in template]
        samples = []
        for x, y in densify(scaled, spacing):
            if jitter:
                x += rng.gauss(0.0, jitter * height)
                y += rng.gauss(0.0, jitter * height)
            samples.append(Point(x, y, clock))
            clock += SAMPLE_INTERVAL_MS
        strokes.append(Stroke(tuple(samples)))
        clock += PEN_UP_MS
    return strokes


def synthesize_number(
    text: str,
    origin: Tuple[float, float] = (20.0, 40.0),
    digit_height: float = 80.0,
    gap: float = 60.0,
    jitter: float = 0.0,
    seed: int = 0,
) -> Tuple[List[Stroke], Tuple[float, float]]:
    """
    Strokes for a digit string written left to right.

    ``gap`` is the blank space between neighbouring digits. Returns the
    strokes and a canvas size that fits them with the same margin.
    """
    rng = random.Random(seed)
    strokes: List[Stroke] = []
    x, y = origin
    clock = 0
    width = digit_height * DIGIT_WIDTH_RATIO
    for char in text:
        if not char.isdigit():
            raise ValueError(f"cannot synthesise non-digit character {char!r}")
        drawn = digit_strokes(int(char), (x, y), digit_height, clock, jitter, rng)
        strokes.extend(drawn)
        clock = drawn[-1].points[-1].timestamp + DIGIT_PAUSE_MS
        x += width + gap
    canvas_width = max(x - gap + origin[0], 1.0)
    canvas_height = y + digit_height + origin[1]
    return strokes, (canvas_width, canvas_height)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Write synthetic digit strokes to a JSON file")
    parser.add_argument("--text", required=True, help="Digits to draw, e.g. 4071")
    parser.add_argument("--out", required=True, help="Output stroke file (.json)")
    parser.add_argument("--height", type=float, default=80.0, help="Digit height in pixels")
    parser.add_argument("--gap", type=float, default=60.0, help="Space between digits in pixels")
    parser.add_argument("--jitter", type=float, default=0.0, help="Per-sample noise as a fraction of height")
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args(argv)

    strokes, canvas = synthesize_number(args.text, digit_height=args.height, gap=args.gap,
                                        jitter=args.jitter, seed=args.seed)
    save_strokes(args.out, strokes, canvas)
    print(f"Wrote {len(strokes)} strokes for '{args.text}' to {args.out} (canvas {canvas[0]:.0f}x{canvas[1]:.0f})")


if __name__ == "__main__":
    main()
