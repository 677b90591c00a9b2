"""
Playback sequencing for VaporPlayer.

Computes the next/previous catalog index under shuffle and repeat. The
functions here never touch the catalog or the audio output; randomness is
limited to one draw per call (or one permutation per shuffle cycle).
"""

import logging
import random
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class RepeatMode(Enum):
    """Repeat modes."""

    OFF = "off"  # Stop after last track
    ONE = "one"  # Repeat current track
    ALL = "all"  # Loop entire catalog

    def cycle(self) -> "RepeatMode":
        """Next mode in the off -> one -> all -> off rotation."""
        order = [RepeatMode.OFF, RepeatMode.ONE, RepeatMode.ALL]
        return order[(order.index(self) + 1) % len(order)]

    @property
    def label(self) -> str:
        return f"Repeat {self.value.capitalize()}"


def _draw_other(current: int, count: int, rng: Optional[random.Random]) -> int:
    """Uniform draw from [0, count) excluding current (rejection sampling)."""
    randrange = rng.randrange if rng is not None else random.randrange
    while True:
        r = randrange(count)
        if r != current:
            return r


def next_index(
    current: int,
    count: int,
    shuffle: bool,
    repeat_mode: RepeatMode,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Index to play after current.

    Returns current unchanged for repeat-one, for an empty catalog, and at
    the end of the catalog with repeat off (the caller must then stop).
    """
    if count <= 0:
        return current
    if repeat_mode == RepeatMode.ONE:
        return current
    if shuffle and count > 1:
        return _draw_other(current, count, rng)
    if current + 1 < count:
        return current + 1
    return 0 if repeat_mode == RepeatMode.ALL else current


def prev_index(
    current: int,
    count: int,
    shuffle: bool,
    repeat_mode: RepeatMode,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Index to play before current.

    Under shuffle this is another random draw, not a step back in history.
    """
    if count <= 0:
        return current
    if repeat_mode == RepeatMode.ONE:
        return current
    if shuffle and count > 1:
        return _draw_other(current, count, rng)
    if current > 0:
        return current - 1
    return count - 1 if repeat_mode == RepeatMode.ALL else 0


class ShuffleOrder:
    """
    Precomputed random permutation of catalog positions.

    The pivot (usually the current track) is placed first so the walk
    starts from what is playing. Walking past either end draws a fresh
    permutation around the track the walk stopped on.
    """

    def __init__(self, count: int, pivot: int = 0, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self.count = count
        self._order: list[int] = []
        self._positions: dict[int, int] = {}
        self._build(pivot)

    def _build(self, pivot: int) -> None:
        indexes = list(range(self.count))
        self._rng.shuffle(indexes)

        if 0 <= pivot < self.count:
            pivot_position = indexes.index(pivot)
            indexes[0], indexes[pivot_position] = indexes[pivot_position], indexes[0]

        self._order = indexes
        self._positions = {track_index: pos for pos, track_index in enumerate(indexes)}
        logger.debug(f"Shuffle order built around {pivot}: {self._order[:10]}...")

    @property
    def order(self) -> list[int]:
        return list(self._order)

    def after(self, current: int) -> int:
        """Next position in the permutation."""
        if self.count <= 1:
            return current
        pos = self._positions.get(current)
        if pos is None:
            self._build(current)
            pos = 0
        if pos + 1 >= self.count:
            self._build(current)
            pos = 0
        return self._order[pos + 1]

    def before(self, current: int) -> int:
        """Previous position in the permutation."""
        if self.count <= 1:
            return current
        pos = self._positions.get(current)
        if pos is None or pos == 0:
            # Nothing earlier in this cycle; start a new one from here
            self._build(current)
            return self._order[-1]
        return self._order[pos - 1]


class PlaybackSequencer:
    """
    Chooses the next/previous index for the playback session.

    Strategies:
    - random: one rejection-sampled draw per call (default)
    - permutation: walks a ShuffleOrder, suited to large catalogs

    Only the shuffle branch differs between strategies; repeat handling and
    sequential stepping are the same functions as next_index/prev_index.
    """

    STRATEGIES = ("random", "permutation")

    def __init__(self, strategy: str = "random", rng: Optional[random.Random] = None):
        if strategy not in self.STRATEGIES:
            raise ValueError(f"Unknown shuffle strategy: {strategy}")
        self.strategy = strategy
        self._rng = rng or random.Random()
        self._shuffle_order: Optional[ShuffleOrder] = None

    def invalidate(self) -> None:
        """Drop the shuffle permutation (catalog or shuffle flag changed)."""
        if self._shuffle_order is not None:
            logger.debug("Shuffle order invalidated")
        self._shuffle_order = None

    def _order_for(self, current: int, count: int) -> ShuffleOrder:
        if self._shuffle_order is None or self._shuffle_order.count != count:
            self._shuffle_order = ShuffleOrder(count, pivot=current, rng=self._rng)
        return self._shuffle_order

    def _use_permutation(self, count: int, shuffle: bool, repeat_mode: RepeatMode) -> bool:
        return (
            self.strategy == "permutation"
            and shuffle
            and count > 1
            and repeat_mode != RepeatMode.ONE
        )

    def next(self, current: int, count: int, shuffle: bool, repeat_mode: RepeatMode) -> int:
        if self._use_permutation(count, shuffle, repeat_mode):
            return self._order_for(current, count).after(current)
        return next_index(current, count, shuffle, repeat_mode, self._rng)

    def previous(self, current: int, count: int, shuffle: bool, repeat_mode: RepeatMode) -> int:
        if self._use_permutation(count, shuffle, repeat_mode):
            return self._order_for(current, count).before(current)
        return prev_index(current, count, shuffle, repeat_mode, self._rng)
