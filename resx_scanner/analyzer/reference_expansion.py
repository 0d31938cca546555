"""Expand usage candidates into the set of files that reach them.

Phase 2 of usage discovery. Every distinct container symbol is searched once
per scan; the results are memoized and shared by all candidates inside that
container.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Protocol

from .reference_tracker import ReferenceSearchError, ReferenceSearchResult
from .symbols import PROPERTY, MemberSymbol
from .usage_extractor import KeyUsage, UsageCandidate

logger = logging.getLogger(__name__)


class ReferenceFinder(Protocol):
    """Anything that can search the solution for references to a member."""

    async def find_references(self, symbol: MemberSymbol) -> ReferenceSearchResult:
        ...


def _same_file(left: str, right: str) -> bool:
    return os.path.normcase(os.path.abspath(left)) == os.path.normcase(os.path.abspath(right))


class ReferenceExpander:
    """Resolve candidates to KeyUsages with solution-relative call sites.

    Call-site policy:
    - every file holding a reference to the container counts;
    - the container's declaring file counts for properties, and for methods
      only when it differs from the file the usage was found in.

    Args:
        finder: Reference search backend
        solution_dir: Directory call-site paths are made relative to
        max_concurrency: Upper bound on simultaneous searches
    """

    def __init__(self, finder: ReferenceFinder, solution_dir: str | Path, max_concurrency: int = 8):
        self.finder = finder
        self.solution_dir = str(solution_dir)
        self._cache: Dict[MemberSymbol, ReferenceSearchResult] = {}
        self._locks: Dict[MemberSymbol, asyncio.Lock] = {}
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def search(self, symbol: MemberSymbol) -> ReferenceSearchResult:
        """Memoized reference search; failures degrade to an empty result."""
        lock = self._locks.setdefault(symbol, asyncio.Lock())
        async with lock:
            cached = self._cache.get(symbol)
            if cached is not None:
                return cached

            async with self._semaphore:
                try:
                    result = await self.finder.find_references(symbol)
                except (ReferenceSearchError, RecursionError) as e:
                    logger.warning("Reference search failed for %s: %s", symbol.qualified_name, e)
                    result = ReferenceSearchResult()

            self._cache[symbol] = result
            return result

    def relative_path(self, path: str) -> str:
        return Path(os.path.relpath(path, self.solution_dir)).as_posix()

    def call_sites(self, candidate: UsageCandidate, result: ReferenceSearchResult) -> FrozenSet[str]:
        paths = set(result.reference_paths)
        for definition in result.definitions:
            if candidate.container.kind == PROPERTY or not _same_file(definition, candidate.file_path):
                paths.add(definition)
        return frozenset(self.relative_path(path) for path in paths)

    async def expand(self, candidates: Iterable[UsageCandidate]) -> List[KeyUsage]:
        """Search each distinct container once and build one KeyUsage per candidate."""
        candidates = list(candidates)
        containers = list(dict.fromkeys(candidate.container for candidate in candidates))

        results = await asyncio.gather(*(self.search(container) for container in containers))
        by_container = dict(zip(containers, results))

        logger.debug("Expanded %d candidate(s) over %d container(s)", len(candidates), len(containers))
        return [
            KeyUsage(candidate.resource_name, candidate.key,
                     self.call_sites(candidate, by_container[candidate.container]))
            for candidate in candidates
        ]
