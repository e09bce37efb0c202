"""
Matplotlib views of grouping and normalisation, for debugging.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle

from .aggregation import AggregateResult
from .ink import PixelComponent, Stroke
from .normalization import ImageNormalizer
from .segmentation import CharacterGroup

GROUP_COLOURS = [
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7",
    "#DDA0DD", "#98D8C8", "#F7DC6F", "#BB8FCE", "#85C1E9",
]


def _draw_shape(ax, shape, colour: str) -> None:
    if isinstance(shape, Stroke):
        ax.plot([p.x for p in shape.points], [p.y for p in shape.points], color=colour, linewidth=2)
    elif isinstance(shape, PixelComponent):
        ax.scatter([p[0] for p in shape.pixels], [p[1] for p in shape.pixels], s=1, color=colour, marker="s")


def visualize_groups(
    groups: Sequence[CharacterGroup],
    result: Optional[AggregateResult] = None,
    normalizer: Optional[ImageNormalizer] = None,
    return_fig: bool = False,
):
    """
    Top row: the ink with one colour and bounding box per group, labelled
    with the recognised digit when ``result`` is given. Bottom row: each
    group's canonical image.
    """
    if not groups:
        print("No groups to visualize")
        return None

    normalizer = normalizer or ImageNormalizer()
    labels: List[str] = [f"#{n + 1}" for n in range(len(groups))]
    if result is not None:
        by_indices = {r.group.indices: r for r in result.per_group}
        for n, group in enumerate(groups):
            match = by_indices.get(group.indices)
            if match is not None:
                digit = "?" if match.failed else str(match.predicted_digit)
                labels[n] = f"{digit} ({match.confidence:.2f})"

    columns = max(3, len(groups))
    fig = plt.figure(figsize=(3 * columns, 6))
    grid = fig.add_gridspec(2, columns)
    top = fig.add_subplot(grid[0, :])

    for n, group in enumerate(groups):
        colour = GROUP_COLOURS[n % len(GROUP_COLOURS)]
        for shape in group.shapes:
            _draw_shape(top, shape, colour)
        box = group.bbox
        top.add_patch(Rectangle((box.min_x, box.min_y), box.width, box.height,
                                fill=False, edgecolor=colour, linestyle="--", linewidth=1.5))
        top.text(box.min_x, box.min_y - 4, labels[n], color=colour, fontsize=10)
    top.set_aspect("equal")
    top.invert_yaxis()
    top.set_title("Character groups")

    for n in range(columns):
        ax = fig.add_subplot(grid[1, n])
        ax.axis("off")
        if n < len(groups):
            image = normalizer.normalize(groups[n])
            ax.imshow(image.intensity, cmap="gray")
            ax.set_title(labels[n])

    plt.tight_layout()
    if return_fig:
        return fig
    plt.show()
    return None
