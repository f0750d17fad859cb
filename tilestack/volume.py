"""
Random-access 3D sources for scale level 0 export.

Every volume is addressed in native (x, y, z) order and returns blocks indexed
[x, y, z] with an optional trailing channel axis. Volumes are read-only; the
tiler only borrows them.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Sequence, Tuple, Union

import dask
import dask.array as da
import numpy as np
import tifffile
from cachetools import LRUCache

from .constants import DEFAULT_SECTION_CACHE_BYTES
from .errors import TileReadError

logger = logging.getLogger(__name__)


class ArrayVolume:
    """
    Volume backed by a numpy or dask array in native (x, y, z[, c]) order.

    Dask arrays stay lazy; each `read_interval` computes only the requested
    block, on the calling thread.
    """
    def __init__(self, array) -> None:
        if array.ndim not in (3, 4):
            raise ValueError(f"Volume array must be 3D or 4D, got shape {array.shape}")
        self.array = array

    @classmethod
    def from_zyx(cls, array) -> "ArrayVolume":
        """Wrap a stack stored in the usual (z, y, x[, c]) order."""
        axes = (2, 1, 0) + tuple(range(3, array.ndim))
        return cls(array.transpose(axes))

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(int(n) for n in self.array.shape[:3])

    @property
    def pixel_shape(self) -> Tuple[int, ...]:
        return tuple(self.array.shape[3:])

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.array.dtype)

    def read_interval(self, min_: Sequence[int], size: Sequence[int]) -> np.ndarray:
        """
        Read the block starting at `min_` with extent `size` (native order).

        Raises
        ------
        TileReadError
            If the block reaches outside the volume or the backing store
            fails.
        """
        for lo, n, limit in zip(min_, size, self.shape):
            if lo < 0 or n <= 0 or lo + n > limit:
                raise TileReadError(
                    f"Block {tuple(min_)}+{tuple(size)} outside volume of shape {self.shape}"
                )
        index = tuple(slice(lo, lo + n) for lo, n in zip(min_, size))
        block = self.array[index]
        try:
            if hasattr(block, "compute"):
                block = block.compute(scheduler="synchronous")
            return np.asarray(block)
        except TileReadError:
            raise
        except OSError as e:
            raise TileReadError(f"Failed to read block {tuple(min_)}+{tuple(size)}: {e}") from e


class SectionCache:
    """
    LRU cache for decoded source sections, evicting based on total bytes.

    Thread-safe: loads happen under the lock so concurrent tiles that need the
    same section decode it only once.
    """
    def __init__(self, loader: Callable[[int], np.ndarray], max_bytes: int) -> None:
        """
        Parameters
        ----------
        loader : Callable[[int], np.ndarray]
            Reads section `index` from storage when missing in the cache.
        max_bytes : int
            Maximum total bytes to keep before evicting least-recently-used
            sections.
        """
        self.loader = loader
        self.max_bytes = max_bytes
        self.cache: LRUCache = LRUCache(maxsize=max_bytes, getsizeof=lambda arr: arr.nbytes)
        self._lock = threading.Lock()

    def get(self, index: int) -> np.ndarray:
        key = int(index)
        with self._lock:
            if key in self.cache:
                return self.cache[key]
            section = self.loader(key)
            if section.nbytes > self.max_bytes:
                logger.debug(f"Section {key} ({section.nbytes} bytes) exceeds cache size, not cached")
                return section
            self.cache[key] = section
            return section


class TiffStackVolume(ArrayVolume):
    """
    Directory of per-section TIFF files exposed as one lazy volume.

    Files are ordered by name; file i is section z=i. All sections must share
    shape and dtype with the first one.
    """
    def __init__(
        self,
        root: Union[str, Path],
        glob_pat: str = "*.tif*",
        max_bytes: int = DEFAULT_SECTION_CACHE_BYTES,
    ) -> None:
        self.root = Path(root)
        if not self.root.is_dir():
            raise FileNotFoundError(f"Root path '{self.root}' is not a directory")
        self.paths = sorted(self.root.glob(glob_pat))
        if not self.paths:
            raise FileNotFoundError(f"No TIFF sections found in '{self.root}'")

        with tifffile.TiffFile(self.paths[0]) as tif:
            page = tif.pages[0]
            self.section_shape = tuple(page.shape)
            section_dtype = page.dtype
        self.sections = SectionCache(self._load_section, max_bytes)

        load = dask.delayed(self.sections.get)
        stack = da.stack(
            [
                da.from_delayed(load(i), shape=self.section_shape, dtype=section_dtype)
                for i in range(len(self.paths))
            ],
            axis=0,
        )
        # (z, y, x[, c]) -> (x, y, z[, c])
        super().__init__(stack.transpose((2, 1, 0) + tuple(range(3, stack.ndim))))

    def _load_section(self, index: int) -> np.ndarray:
        path = self.paths[index]
        try:
            arr = tifffile.imread(path)
        except (OSError, ValueError) as e:
            raise TileReadError(f"Failed to read section {index}: {e}", path=path) from e
        if arr.shape != self.section_shape:
            # multi-page file: keep first plane
            if arr.ndim == len(self.section_shape) + 1 and arr.shape[1:] == self.section_shape:
                arr = arr[0]
            else:
                raise TileReadError(
                    f"Section {index} has shape {arr.shape}, expected {self.section_shape}",
                    path=path,
                )
        logger.debug(f"Decoded section {index} from {path.name}")
        return arr


def open_volume(path: Union[str, Path], max_bytes: int = DEFAULT_SECTION_CACHE_BYTES) -> ArrayVolume:
    """
    Open a TIFF stack directory or a single (multi-page) TIFF file.

    Single files are read fully into memory in (z, y, x[, c]) order. A single
    page, gray or with samples per pixel, is one section.
    """
    path = Path(path)
    if path.is_dir():
        return TiffStackVolume(path, max_bytes=max_bytes)
    if not path.is_file():
        raise FileNotFoundError(f"Source '{path}' does not exist")
    with tifffile.TiffFile(path) as tif:
        series = tif.series[0]
        arr = series.asarray()
        has_samples = series.axes.endswith("S")
    if arr.ndim == 2 or (arr.ndim == 3 and has_samples):
        arr = arr[np.newaxis]
    return ArrayVolume.from_zyx(arr)
