"""End-to-end scan: catalog pass and usage pass run concurrently, then join and aggregate."""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from resx_scanner.analyzer.catalog import CatalogEntry, CatalogExtractor
from resx_scanner.analyzer.reference_expansion import ReferenceExpander
from resx_scanner.analyzer.reference_tracker import ReferenceTracker
from resx_scanner.analyzer.symbol_index import SymbolIndex
from resx_scanner.analyzer.usage_extractor import KeyUsage, UsageCandidate, UsageExtractor
from resx_scanner.analyzer.workspace import Solution, WorkspaceLoader
from resx_scanner.config import ScanOptions
from resx_scanner.reporting.aggregator import ReportEntry, aggregate
from resx_scanner.reporting.correlator import correlate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    entries: List[ReportEntry]
    definition_count: int
    usage_count: int
    document_count: int
    solution_directory: Path


class Scanner:
    """Runs one scan.

    Args:
        options: Merged scan options
        on_phase: Optional callback receiving a short description whenever a
            phase starts (drives the CLI progress display)
    """

    def __init__(self, options: ScanOptions, on_phase: Optional[Callable[[str], None]] = None):
        self.options = options
        self.on_phase = on_phase or (lambda description: None)

    async def scan(self) -> ScanResult:
        """Load the solution, collect definitions and usages, and aggregate.

        Raises:
            WorkspaceError: If the solution cannot be loaded
            CatalogError: If a resource file cannot be read
        """
        self.on_phase("Loading solution...")
        solution = await WorkspaceLoader().open(self.options.source)
        logger.debug("Solution %s: %d project(s), %d document(s)",
                     solution.directory, len(solution.projects), solution.document_count)

        definitions_task = asyncio.create_task(self._definitions(solution))
        usages_task = asyncio.create_task(self._usages(solution))
        try:
            definitions, usages = await asyncio.gather(definitions_task, usages_task)
        except BaseException:
            # One side failed (or the scan was cancelled): stop the other
            for task in (definitions_task, usages_task):
                task.cancel()
            await asyncio.gather(definitions_task, usages_task, return_exceptions=True)
            raise

        self.on_phase("Correlating keys...")
        records = correlate(definitions, usages)
        entries = aggregate(records, self.options.buckets, self.options.max_path_count)

        return ScanResult(
            entries=entries,
            definition_count=len(definitions),
            usage_count=len(usages),
            document_count=solution.document_count,
            solution_directory=solution.directory,
        )

    async def _definitions(self, solution: Solution) -> List[CatalogEntry]:
        return await asyncio.to_thread(CatalogExtractor().extract_solution, solution)

    async def _usages(self, solution: Solution) -> List[KeyUsage]:
        self.on_phase("Indexing C# sources...")
        sources: List[Tuple[str, str]] = []
        seen = set()
        for project in solution.projects:
            for document in project.documents:
                if document not in seen:
                    seen.add(document)
                    sources.append((str(document), project.name))

        index = await SymbolIndex.build(sources, self.options.localizer_types, self.options.max_concurrency)

        self.on_phase("Finding localizer usages...")
        candidates = await self._candidates(index)

        self.on_phase("Expanding call sites...")
        expander = ReferenceExpander(ReferenceTracker(index), solution.directory, self.options.max_concurrency)
        return await expander.expand(candidates)

    async def _candidates(self, index: SymbolIndex) -> List[UsageCandidate]:
        extractor = UsageExtractor(index)
        candidates = []
        for document in index.iter_documents():
            try:
                found = list(extractor.extract(document))
            except (RecursionError, ValueError) as e:
                logger.warning("Skipping usages in %s: %s", document.path, e)
                found = []
            candidates.extend(found)
            await asyncio.sleep(0)
        logger.debug("Found %d usage candidate(s)", len(candidates))
        return candidates
