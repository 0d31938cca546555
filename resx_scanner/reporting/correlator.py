"""Full outer join of key definitions and key usages."""
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Hashable, Iterable, Iterator, List, Optional, TypeVar

from resx_scanner.analyzer.catalog import CatalogEntry
from resx_scanner.analyzer.usage_extractor import KeyUsage

Outer = TypeVar('Outer')
Inner = TypeVar('Inner')
Result = TypeVar('Result')


@dataclass(frozen=True)
class JoinedRecord:
    """One definition row, usage row, or definition paired with a usage."""
    resource_name: str
    key: str
    value: Optional[str] = None
    comment: Optional[str] = None
    locale: Optional[str] = None
    call_sites: FrozenSet[str] = frozenset()


def full_join(outer: Iterable[Outer], inner: Iterable[Inner],
              outer_key: Callable[[Outer], Hashable], inner_key: Callable[[Inner], Hashable],
              result: Callable[[Optional[Outer], Optional[Inner]], Result]) -> Iterator[Result]:
    """Hash-based full outer join.

    Both inputs are indexed once. For every key (outer keys first, in
    first-seen order, then keys only present in `inner`) the product of
    matching rows is emitted; a missing side is passed as None.
    """
    outer_groups: Dict[Hashable, List[Outer]] = OrderedDict()
    for row in outer:
        outer_groups.setdefault(outer_key(row), []).append(row)

    inner_groups: Dict[Hashable, List[Inner]] = OrderedDict()
    for row in inner:
        inner_groups.setdefault(inner_key(row), []).append(row)

    for key, outer_rows in outer_groups.items():
        inner_rows = inner_groups.get(key) or [None]
        for left in outer_rows:
            for right in inner_rows:
                yield result(left, right)

    for key, inner_rows in inner_groups.items():
        if key in outer_groups:
            continue
        for right in inner_rows:
            yield result(None, right)


def _join_row(definition: Optional[CatalogEntry], usage: Optional[KeyUsage]) -> JoinedRecord:
    source = definition if definition is not None else usage
    return JoinedRecord(
        resource_name=source.resource_name,
        key=source.key,
        value=definition.value if definition is not None else None,
        comment=definition.comment if definition is not None else None,
        locale=definition.locale if definition is not None else None,
        call_sites=usage.call_sites if usage is not None else frozenset(),
    )


def correlate(definitions: Iterable[CatalogEntry], usages: Iterable[KeyUsage]) -> List[JoinedRecord]:
    """Join definitions and usages on (resource name, key)."""
    return list(full_join(
        definitions, usages,
        lambda d: (d.resource_name, d.key),
        lambda u: (u.resource_name, u.key),
        _join_row,
    ))
