"""Single-pass, coordinate-ordered traversal with map/combine aggregation.

One :class:`CoordinateTraversalEngine` walks one coordinate range. Parallel
runs split the genome into shards, traverse each with its own engine, and
combine the per-shard accumulators with :func:`tree_reduce`; the combine
function must therefore be associative.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Collection,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

import numpy as np
from tqdm import tqdm

from .lookahead import LookaheadCoordinateQueue
from .models import Coordinate

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")


@dataclass(frozen=True)
class SiteContext:
    """Everything known at one site: the coordinate and per-source overlapping entries."""

    coordinate: Coordinate
    data: Mapping[str, Tuple[Any, ...]] = field(default_factory=dict)

    def get(self, name: str) -> Tuple[Any, ...]:
        return self.data.get(name, ())


def downsample_to_coverage(
    entries: Sequence[Any], cap: int, rng: np.random.Generator
) -> Tuple[Any, ...]:
    """Randomly keep at most ``cap`` entries, preserving their original order."""
    if cap < 0:
        raise ValueError("downsampling cap must be >= 0")
    if len(entries) <= cap:
        return tuple(entries)
    keep = np.sort(rng.choice(len(entries), size=cap, replace=False))
    return tuple(entries[int(i)] for i in keep)


class CoordinateTraversalEngine(Generic[M, T]):
    """Drive one forward pass over a site source.

    Parameters
    ----------
    sites:
        Coordinates in non-decreasing order. Consumed once.
    map_fn:
        Called with a :class:`SiteContext` for every accepted site.
    combine_fn:
        ``combine_fn(acc, value)`` folds a mapped value into the accumulator.
        Must be associative so shard results can be merged in any grouping.
    zero:
        Initial accumulator value.
    sources:
        Named auxiliary sources; each gets its own lookahead queue.
    filter_fn:
        Site predicate; sites it rejects are counted but not mapped.
    max_records:
        Stop (with a warning, not an error) once this many sites were processed.
    downsample_to:
        Per-site cap on entries kept from each auxiliary source.
    downsample_sources:
        Names of the sources the cap applies to (default: all of them).
    seed:
        Seed for the downsampling generator.
    progress:
        Show a tqdm progress bar.
    progress_every:
        Log an INFO progress line every this many sites.
    """

    def __init__(
        self,
        sites: Iterable[Coordinate],
        *,
        map_fn: Callable[[SiteContext], M],
        combine_fn: Callable[[T, M], T],
        zero: T,
        sources: Optional[Mapping[str, Iterable[Any]]] = None,
        filter_fn: Optional[Callable[[SiteContext], bool]] = None,
        max_records: Optional[int] = None,
        downsample_to: Optional[int] = None,
        downsample_sources: Optional[Collection[str]] = None,
        seed: Optional[int] = None,
        progress: bool = False,
        progress_every: int = 100_000,
        name: str = "sites",
    ) -> None:
        if max_records is not None and max_records < 0:
            raise ValueError("max_records must be >= 0")
        if downsample_to is not None and downsample_to < 0:
            raise ValueError("downsample_to must be >= 0")

        self.name = name
        self._sites = sites
        self._map_fn = map_fn
        self._combine_fn = combine_fn
        self._filter_fn = filter_fn
        self.max_records = max_records
        self.downsample_to = downsample_to
        self.downsample_sources = None if downsample_sources is None else frozenset(downsample_sources)
        self.progress = progress
        self.progress_every = max(1, int(progress_every))
        self._rng = np.random.default_rng(seed)

        self.queues: Dict[str, LookaheadCoordinateQueue[Any]] = {
            src_name: LookaheadCoordinateQueue(src, name=src_name)
            for src_name, src in (sources or {}).items()
        }
        self.n_records = 0
        self.n_mapped = 0
        self.stopped_early = False
        self.last_coordinate: Optional[Coordinate] = None
        self.accumulator: T = zero
        self._done = False

    def _context_at(self, site: Coordinate) -> SiteContext:
        data: Dict[str, Tuple[Any, ...]] = {}
        for src_name, queue in self.queues.items():
            entries = queue.seek(site).peek()
            if self.downsample_to is not None and (
                self.downsample_sources is None or src_name in self.downsample_sources
            ):
                entries = downsample_to_coverage(entries, self.downsample_to, self._rng)
            data[src_name] = entries
        return SiteContext(coordinate=site, data=data)

    def traverse(self) -> T:
        """Run the pass and return the accumulator (partial if stopped early)."""
        if self._done:
            raise RuntimeError(f"Traversal '{self.name}' already ran; sources cannot be replayed")
        self._done = True

        it: Iterable[Coordinate] = self._sites
        if self.progress:
            it = tqdm(it, unit="site", desc=f"Traversing {self.name}")

        acc = self.accumulator
        for site in it:
            if self.max_records is not None and self.n_records >= self.max_records:
                logger.warning(
                    "Maximum number of records encountered (%d), terminating traversal of %s at %s",
                    self.max_records,
                    self.name,
                    site,
                )
                self.stopped_early = True
                break

            self.n_records += 1
            self.last_coordinate = site

            ctx = self._context_at(site)
            accept = True if self._filter_fn is None else bool(self._filter_fn(ctx))
            if accept:
                acc = self._combine_fn(acc, self._map_fn(ctx))
                self.n_mapped += 1
            self.accumulator = acc

            if self.n_records % self.progress_every == 0:
                logger.info("%s: processed %d sites, at %s", self.name, self.n_records, site)

        logger.debug(
            "%s: traversal done, %d sites processed, %d mapped%s",
            self.name,
            self.n_records,
            self.n_mapped,
            " (stopped early)" if self.stopped_early else "",
        )
        return acc


def tree_reduce(values: Sequence[T], combine_fn: Callable[[T, T], T], zero: T) -> T:
    """Combine values pairwise, adjacent pairs first, until one remains."""
    level: List[T] = list(values)
    if not level:
        return zero
    while len(level) > 1:
        nxt: List[T] = []
        for i in range(0, len(level) - 1, 2):
            nxt.append(combine_fn(level[i], level[i + 1]))
        if len(level) % 2 == 1:
            nxt.append(level[-1])
        level = nxt
    return level[0]


def traverse_shards(
    shards: Sequence[Callable[[], T]],
    *,
    combine_fn: Callable[[T, T], T],
    zero: T,
    workers: int = 1,
) -> T:
    """Run independent shard traversals and merge their results in shard order.

    Each shard callable builds and runs its own engine; nothing is shared
    between shards until the final merge.
    """
    results: Dict[int, T] = {}
    if workers <= 1 or len(shards) <= 1:
        for i, fn in enumerate(shards):
            results[i] = fn()
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_shard = {executor.submit(fn): i for i, fn in enumerate(shards)}
            for future in as_completed(future_to_shard):
                i = future_to_shard[future]
                results[i] = future.result()
                logger.debug("Shard %d/%d finished", i + 1, len(shards))

    return tree_reduce([results[i] for i in range(len(shards))], combine_fn, zero)
