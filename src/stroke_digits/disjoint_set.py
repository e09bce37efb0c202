"""
Union-Find over the index space ``0 .. n-1``.

Used both for 8-connected pixel labelling and for merging strokes. ``find``
compresses paths iteratively so deep chains on large rasters never hit the
interpreter's recursion limit.
"""

from __future__ import annotations

from typing import Dict, List

from .errors import IndexOutOfRangeError


class DisjointSet:
    """Disjoint-set forest with full path compression and union by rank."""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("size must be >= 0")
        self._parent: List[int] = list(range(size))
        self._rank: List[int] = [0] * size
        self._count = size

    def __len__(self) -> int:
        return len(self._parent)

    @property
    def set_count(self) -> int:
        """Number of disjoint sets currently held."""
        return self._count

    def _check(self, x: int) -> None:
        if not 0 <= x < len(self._parent):
            raise IndexOutOfRangeError(f"index {x} outside 0..{len(self._parent) - 1}")

    def find(self, x: int) -> int:
        self._check(x)
        parent = self._parent
        root = x
        while parent[root] != root:
            root = parent[root]
        # Second pass: point every node on the path straight at the root.
        while parent[x] != root:
            parent[x], x = root, parent[x]
        return root

    def union(self, x: int, y: int) -> bool:
        """Merge the sets of ``x`` and ``y``. Returns False if already joined."""
        root_x = self.find(x)
        root_y = self.find(y)
        if root_x == root_y:
            return False
        rank = self._rank
        if rank[root_x] < rank[root_y]:
            self._parent[root_x] = root_y
        elif rank[root_x] > rank[root_y]:
            self._parent[root_y] = root_x
        else:
            self._parent[root_y] = root_x
            rank[root_x] += 1
        self._count -= 1
        return True

    def connected(self, x: int, y: int) -> bool:
        return self.find(x) == self.find(y)

    def rank(self, x: int) -> int:
        self._check(x)
        return self._rank[x]

    def groups(self) -> Dict[int, List[int]]:
        """Map each representative to its members in ascending order."""
        result: Dict[int, List[int]] = {}
        for index in range(len(self._parent)):
            result.setdefault(self.find(index), []).append(index)
        return result
