"""Reference tracker for mapping member symbols to their call sites across the solution."""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Tuple

from .symbol_index import SymbolIndex
from .symbols import MemberSymbol
from .syntax import node_text, traverse

logger = logging.getLogger(__name__)


class ReferenceSearchError(Exception):
    """Raised when references to a symbol cannot be computed."""


class UnsupportedReferenceSearch(ReferenceSearchError):
    """Raised for symbols without a searchable source declaration (extern members)."""


@dataclass(frozen=True)
class ReferenceLocation:
    """A reference to a member in code."""
    file_path: str
    line: int


@dataclass(frozen=True)
class ReferenceSearchResult:
    """All references to a symbol plus the files it is declared in."""
    references: Tuple[ReferenceLocation, ...] = ()
    definitions: Tuple[str, ...] = ()

    @property
    def reference_paths(self) -> List[str]:
        return [location.file_path for location in self.references]


class ReferenceTracker:
    """Whole-solution reference search over the symbol index.

    SYMBOL-BASED: candidate identifiers are found with a cheap byte scan, then
    each one is bound through the semantic model. Only identifiers that bind
    to the symbol or a member of its family (overridden base members,
    implemented interface members and overrides in derived types) count.
    """

    def __init__(self, index: SymbolIndex):
        self.index = index

    async def find_references(self, symbol: MemberSymbol) -> ReferenceSearchResult:
        """Find every reference to `symbol` in the solution.

        Yields to the event loop between documents so a cancelled scan stops
        promptly.

        Args:
            symbol: Declared member to search for

        Returns:
            ReferenceSearchResult with reference locations and the symbol's
            declaration file

        Raises:
            UnsupportedReferenceSearch: If the member is declared extern
            ReferenceSearchError: If binding fails (e.g. pathological nesting)
        """
        if symbol.is_extern:
            raise UnsupportedReferenceSearch(f"{symbol.qualified_name} is extern")

        family = self.index.member_family(symbol)
        needle = symbol.name.encode('utf-8')
        references = []

        for document in self.index.iter_documents():
            await asyncio.sleep(0)
            # Quick pre-filter: skip files that never mention the name
            if needle not in document.source:
                continue

            model = self.index.semantic_model(document.path)
            try:
                for node in traverse(document.tree.root_node):
                    if node.type != 'identifier' or node_text(node) != symbol.name:
                        continue
                    target = model.resolve_member_reference(node)
                    if target is not None and target in family:
                        references.append(ReferenceLocation(document.path, node.start_point[0] + 1))
            except RecursionError as e:
                raise ReferenceSearchError(
                    f"Reference search for {symbol.qualified_name} failed in {document.path}") from e

        logger.debug("%s: %d reference(s)", symbol.qualified_name, len(references))
        return ReferenceSearchResult(tuple(references), (symbol.file_path,))
