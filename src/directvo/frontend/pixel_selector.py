"""Adaptive gradient-based pixel selection.

Pixels are chosen block by block: inside every block the pixel with the
strongest gradient above a locally adapted threshold wins. Blocks without a
candidate at full resolution fall back to the half and quarter resolution
gradients, so low-texture regions still contribute points while textured
regions are not oversampled.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

import numpy as np

from ..config import MIN_BORDER, SelectorConfig
from .image_pyramid import ImagePyramid

if TYPE_CHECKING:
    from .frame import StereoFrame

logger = logging.getLogger(__name__)

# Gradient magnitudes 0..48 (larger values fall into the last bin)
NUM_HIST_BINS = 49

# Selection uses levels 0, 1 and 2 of the pyramid
NUM_SELECTION_LEVELS = 3

_ANGLES = np.arange(16) * (np.pi / 16.0)
_DIRECTIONS = np.stack([np.cos(_ANGLES), np.sin(_ANGLES)], axis=1).astype(np.float32)


@dataclass
class SelectionMap:
    """Per-pixel selection result of one `make_maps` call.

    Attributes:
        levels: HxW int8 pyramid level at which the pixel qualified,
            -1 for unselected pixels
        buckets: HxW int16 gradient-histogram bin of the pixel,
            -1 for unselected pixels
        border: Margin that was excluded on every side
        num_wanted: Number of pixels the density asked for
    """

    levels: np.ndarray
    buckets: np.ndarray
    border: int
    num_wanted: int = 0

    @classmethod
    def empty(cls, shape: tuple[int, int], border: int) -> SelectionMap:
        """Return a map with no selected pixel."""
        return cls(
            levels=np.full(shape, -1, dtype=np.int8),
            buckets=np.full(shape, -1, dtype=np.int16),
            border=border,
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.levels.shape

    @property
    def mask(self) -> np.ndarray:
        """Return HxW boolean mask of selected pixels."""
        return self.levels >= 0

    @property
    def num_selected(self) -> int:
        """Return number of selected pixels."""
        return int(np.count_nonzero(self.levels >= 0))

    @property
    def interior_area(self) -> int:
        """Return number of pixels outside the border margin."""
        h, w = self.shape
        return max(h - 2 * self.border, 0) * max(w - 2 * self.border, 0)

    @property
    def density(self) -> float:
        """Return realized density (selected / interior pixels)."""
        area = self.interior_area
        return self.num_selected / area if area > 0 else 0.0

    def level_counts(self) -> np.ndarray:
        """Return number of selected pixels per selection level."""
        selected = self.levels[self.levels >= 0]
        return np.bincount(selected, minlength=NUM_SELECTION_LEVELS)

    def is_selected(self, u: int, v: int) -> bool:
        """Return True if pixel (u, v) is selected."""
        return bool(self.levels[v, u] >= 0)

    def selected_pixels(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Return (us, vs, levels, buckets) of selected pixels in row-major order."""
        vs, us = np.nonzero(self.levels >= 0)
        return us, vs, self.levels[vs, us], self.buckets[vs, us]

    def __len__(self) -> int:
        return self.num_selected


def _block_argmax(
    score: np.ndarray, mask: np.ndarray, size: int
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Find the best masked pixel of every size x size block.

    Args:
        score: HxW non-negative scores (H, W multiples of size)
        mask: HxW candidates
        size: Block side

    Returns:
        Tuple of (has, ys, xs): per-block flag and coordinates of the winner
    """
    nby, nbx = score.shape[0] // size, score.shape[1] // size
    blocks = (
        np.where(mask, score, -1.0)
        .reshape(nby, size, nbx, size)
        .transpose(0, 2, 1, 3)
        .reshape(nby, nbx, size * size)
    )
    best = blocks.argmax(axis=2)
    has = np.take_along_axis(blocks, best[..., None], axis=2)[..., 0] >= 0.0
    ys = np.arange(nby)[:, None] * size + best // size
    xs = np.arange(nbx)[None, :] * size + best % size
    return has, ys, xs


def _block_any(mask: np.ndarray, size: int) -> np.ndarray:
    nby, nbx = mask.shape[0] // size, mask.shape[1] // size
    return mask.reshape(nby, size, nbx, size).any(axis=(1, 3))


class PixelSelector:
    """Selects trackable pixels at a target density.

    Candidates are ranked in tiers: first the block winners for the largest
    block spacing (potential), then for smaller and smaller spacings, and
    finally every pixel above a minimal gradient floor. The wanted number of
    pixels is taken from the front of this ranking; the tier where the count
    is reached is subsampled with a seeded permutation. The result is a pure
    function of image content and density, and never shrinks when the
    density grows.

    Example:
        >>> selector = PixelSelector(border=5)
        >>> selection = selector.make_maps(frame, 0.05)
        >>> print(f"Selected {selection.num_selected} pixels")
    """

    def __init__(self, border: int = 5, config: SelectorConfig | None = None) -> None:
        """Initialize selector.

        Args:
            border: Margin (pixels) on all four sides that is never selected
            config: Selector tunables. Uses defaults if None.
        """
        if border < MIN_BORDER:
            raise ValueError(f"border must be >= {MIN_BORDER}, got {border}")
        self._border = border
        self._config = config or SelectorConfig()

    def make_maps(self, frame: StereoFrame, target_density: float) -> SelectionMap:
        """Select pixels of the frame's left pyramid.

        Args:
            frame: Frame whose `pyramid` is used
            target_density: Wanted fraction of interior pixels. Values <= 0
                select nothing, values >= 1 select every interior pixel above
                the gradient floor.

        Returns:
            SelectionMap the size of pyramid level 0

        Raises:
            ValueError: If the density is not a finite number
        """
        if not math.isfinite(target_density):
            raise ValueError(f"target_density must be finite, got {target_density}")

        pyramid = frame.pyramid
        h, w = pyramid.shape
        selection = SelectionMap.empty((h, w), self._border)
        if target_density <= 0.0 or selection.interior_area == 0:
            return selection

        num_wanted = int(round(min(target_density, 1.0) * selection.interior_area))
        selection.num_wanted = num_wanted
        if num_wanted == 0:
            return selection

        flat_levels = selection.levels.reshape(-1)
        flat_buckets = selection.buckets.reshape(-1)
        magnitude = np.sqrt(pyramid[0].abs_squared_grad)
        all_buckets = np.minimum(magnitude, NUM_HIST_BINS - 1).astype(np.int16).reshape(-1)

        taken = 0
        for key, idx, levels in self._candidate_tiers(pyramid):
            fresh = flat_levels[idx] < 0
            idx, levels = idx[fresh], levels[fresh]

            remaining = num_wanted - taken
            if len(idx) > remaining:
                # Subsample the tier where the wanted count is reached
                rng = np.random.default_rng([self._config.seed, key, 1])
                keep = np.sort(rng.permutation(len(idx))[:remaining])
                idx, levels = idx[keep], levels[keep]

            flat_levels[idx] = levels
            flat_buckets[idx] = all_buckets[idx]
            taken += len(idx)
            if taken >= num_wanted:
                break

        logger.debug(
            "Selected %d of %d wanted pixels (levels %s)",
            taken,
            num_wanted,
            selection.level_counts().tolist(),
        )
        return selection

    def _interior_mask(self, h: int, w: int) -> np.ndarray:
        b = self._border
        mask = np.zeros((h, w), dtype=bool)
        mask[b : h - b, b : w - b] = True
        return mask

    def _pixel_thresholds(self, abs_squared_grad: np.ndarray) -> np.ndarray:
        """Compute the squared-gradient threshold of every level-0 pixel.

        Each block gets the `hist_cut` quantile of its gradient-magnitude
        histogram plus `hist_add`. Block thresholds are averaged over their
        3x3 block neighbourhood and squared.
        """
        cfg = self._config
        h, w = abs_squared_grad.shape
        size = cfg.block_size
        nby, nbx = max(h // size, 1), max(w // size, 1)

        # Partial blocks at the right/bottom edge join the last full block
        block_y = np.minimum(np.arange(h) // size, nby - 1)
        block_x = np.minimum(np.arange(w) // size, nbx - 1)
        block_id = block_y[:, None] * nbx + block_x[None, :]

        magnitude = np.minimum(np.sqrt(abs_squared_grad), NUM_HIST_BINS - 1).astype(np.int64)
        valid = np.zeros((h, w), dtype=bool)
        valid[1 : h - 1, 1 : w - 1] = True

        hist = np.bincount(
            block_id[valid] * NUM_HIST_BINS + magnitude[valid],
            minlength=nby * nbx * NUM_HIST_BINS,
        ).reshape(nby * nbx, NUM_HIST_BINS)

        counts = hist.sum(axis=1)
        target = (counts * cfg.hist_cut + 0.5).astype(np.int64)
        above = np.cumsum(hist, axis=1) > target[:, None]
        # Blocks without any valid pixel fall back to the top bin
        quantile = np.where(above.any(axis=1), above.argmax(axis=1), NUM_HIST_BINS - 1)

        block_th = (quantile + cfg.hist_add).reshape(nby, nbx).astype(np.float64)

        padded = np.pad(block_th, 1)
        support = np.pad(np.ones_like(block_th), 1)
        total = np.zeros_like(block_th)
        num = np.zeros_like(block_th)
        for oy in range(3):
            for ox in range(3):
                total += padded[oy : oy + nby, ox : ox + nbx]
                num += support[oy : oy + nby, ox : ox + nbx]
        smoothed = (total / num) ** 2

        return smoothed[block_y[:, None], block_x[None, :]].astype(np.float32)

    @staticmethod
    def _at_level0(pyramid: ImagePyramid, level: int, values: np.ndarray) -> np.ndarray:
        """Look up a per-level array at every level-0 pixel."""
        h, w = pyramid.shape
        ys = np.minimum(np.arange(h) >> level, values.shape[0] - 1)
        xs = np.minimum(np.arange(w) >> level, values.shape[1] - 1)
        return values[ys[:, None], xs[None, :]]

    def _candidate_tiers(
        self, pyramid: ImagePyramid
    ) -> Iterator[tuple[int, np.ndarray, np.ndarray]]:
        """Yield (key, flat indices, levels) tiers from sparse to dense."""
        cfg = self._config
        h, w = pyramid.shape
        interior = self._interior_mask(h, w)
        threshold = self._pixel_thresholds(pyramid[0].abs_squared_grad)

        num_levels = min(NUM_SELECTION_LEVELS, pyramid.num_levels)
        masks = []
        for level in range(num_levels):
            grad = self._at_level0(pyramid, level, pyramid[level].abs_squared_grad)
            masks.append(interior & (grad > threshold * cfg.grad_downweight**level))

        for pot in range(cfg.max_potential, 0, -1):
            idx, levels = self._select(pyramid, masks, pot)
            yield pot, idx, levels

        floor = interior & (pyramid[0].abs_squared_grad > cfg.min_gradient_floor**2)
        idx = np.flatnonzero(floor)
        yield 0, idx, np.zeros(len(idx), dtype=np.int8)

    def _select(
        self, pyramid: ImagePyramid, masks: list[np.ndarray], pot: int
    ) -> tuple[np.ndarray, np.ndarray]:
        """Pick block winners for block spacing `pot`.

        Every pot x pot block selects its strongest level-0 candidate. A
        2pot x 2pot block without any level-0 candidate selects its strongest
        level-1 candidate, and a 4pot x 4pot block without level-0/1
        candidates its strongest level-2 candidate. Strength is the gradient
        of the candidate's level projected on a direction drawn per block.
        Level-0 pixels under the same coarse pixel share that strength; among
        them the one with the largest level-0 gradient wins.

        Returns:
            Tuple of (flat indices, levels) of the winners
        """
        h, w = pyramid.shape
        coarsest = pot << (len(masks) - 1)
        H = -(-h // coarsest) * coarsest
        W = -(-w // coarsest) * coarsest
        pad = ((0, H - h), (0, W - w))

        fine_grad = np.pad(pyramid[0].abs_squared_grad, pad)
        rng = np.random.default_rng([self._config.seed, pot])

        finer = np.zeros((H, W), dtype=bool)
        all_idx = []
        all_levels = []
        for level, level_mask in enumerate(masks):
            size = pot << level
            mask = np.pad(level_mask, pad)
            dx = np.pad(self._at_level0(pyramid, level, pyramid[level].dx), pad)
            dy = np.pad(self._at_level0(pyramid, level, pyramid[level].dy), pad)

            choice = rng.integers(0, len(_DIRECTIONS), size=(H // size, W // size))
            direction = np.repeat(np.repeat(_DIRECTIONS[choice], size, axis=0), size, axis=1)
            score = np.abs(dx * direction[..., 0] + dy * direction[..., 1])

            candidates = mask
            if level > 0:
                has, ys, xs = _block_argmax(score, mask, size)
                best = np.where(has, score[ys, xs], np.inf)
                best = np.repeat(np.repeat(best, size, axis=0), size, axis=1)
                candidates = mask & (score >= best)
                score = fine_grad

            has, ys, xs = _block_argmax(score, candidates, size)
            if level > 0:
                has &= ~_block_any(finer, size)
            finer |= mask

            all_idx.append(ys[has] * w + xs[has])
            all_levels.append(np.full(int(has.sum()), level, dtype=np.int8))

        return np.concatenate(all_idx), np.concatenate(all_levels)
