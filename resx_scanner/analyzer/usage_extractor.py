"""Locate localizer key usages in C# source.

A usage is an indexing expression `receiver[key]` whose receiver's static
type converts to a localizer type and whose first argument is a constant
string. Each usage is attributed to the method or property containing it.
"""
import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterator, Optional

from .symbol_index import SourceDocument, SymbolIndex
from .symbols import MemberSymbol, TypeRef
from .syntax import first_argument_expression, traverse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageCandidate:
    """A key usage found in source, before reference expansion."""
    resource_name: str
    key: str
    container: MemberSymbol
    file_path: str


@dataclass(frozen=True)
class KeyUsage:
    """A key usage with the solution-relative paths of its call sites."""
    resource_name: str
    key: str
    call_sites: FrozenSet[str] = frozenset()


def choose_resource_name(receiver_type: Optional[TypeRef], enclosing_type: Optional[str]) -> Optional[str]:
    """Pick the resource catalog a usage belongs to.

    The first generic argument of the receiver's type wins
    (`IStringLocalizer<SharedResource>`); a non-generic receiver falls back
    to the enclosing type declaration.

    Args:
        receiver_type: Static type of the indexed expression
        enclosing_type: Display name of the nearest enclosing type, if any

    Returns:
        Resource name, or None when neither source is available
    """
    if receiver_type is not None and receiver_type.args:
        return receiver_type.args[0].display()
    return enclosing_type or None


class UsageExtractor:
    """Phase 1 of usage discovery: collect candidates document by document."""

    def __init__(self, index: SymbolIndex):
        self.index = index

    def extract(self, document: SourceDocument) -> Iterator[UsageCandidate]:
        """Lazily yield the usage candidates of one document.

        Indexing expressions are discarded when the receiver is not a
        localizer, the key is not a constant, or the expression does not sit
        inside a method or property.
        """
        model = self.index.semantic_model(document.path)

        for node in traverse(document.tree.root_node):
            if node.type != 'element_access_expression':
                continue

            receiver_type = model.expression_type(node.child_by_field_name('expression'))
            if not self.index.is_localizer(receiver_type):
                continue

            key = model.constant_value(first_argument_expression(node))
            if key is None:
                logger.debug("%s:%d: non-constant localizer key ignored",
                             document.path, node.start_point[0] + 1)
                continue

            resource_name = choose_resource_name(receiver_type, model.enclosing_type_display(node))
            if resource_name is None:
                continue

            container = model.declared_member(node)
            if container is None:
                continue

            yield UsageCandidate(resource_name, key, container, document.path)
