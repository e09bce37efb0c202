"""
Bounded pool of reusable float32 scratch buffers.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

import numpy as np

from .constants import BUFFER_POOL_SIZE


class BufferPool:
    """
    Hands out zeroed ``float32`` arrays keyed by shape.

    At most ``max_size`` idle buffers are retained across all shapes; extra
    returns are dropped for the garbage collector. Buffers are zeroed on
    return so a borrower never sees a previous caller's pixels.
    """

    def __init__(self, max_size: int = BUFFER_POOL_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._idle: Dict[Tuple[int, ...], List[np.ndarray]] = {}
        self._lock = threading.Lock()
        self._idle_count = 0

    def acquire(self, shape: Tuple[int, ...]) -> np.ndarray:
        shape = tuple(int(dim) for dim in shape)
        with self._lock:
            bucket = self._idle.get(shape)
            if bucket:
                self._idle_count -= 1
                return bucket.pop()
        return np.zeros(shape, dtype=np.float32)

    def release(self, buffer: np.ndarray) -> None:
        buffer.fill(0.0)
        with self._lock:
            if self._idle_count >= self.max_size:
                return
            self._idle.setdefault(buffer.shape, []).append(buffer)
            self._idle_count += 1

    @contextmanager
    def borrow(self, shape: Tuple[int, ...]) -> Iterator[np.ndarray]:
        buffer = self.acquire(shape)
        try:
            yield buffer
        finally:
            self.release(buffer)

    def __len__(self) -> int:
        with self._lock:
            return self._idle_count

    def clear(self) -> None:
        with self._lock:
            self._idle.clear()
            self._idle_count = 0
