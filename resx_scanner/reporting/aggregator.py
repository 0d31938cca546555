"""Group joined rows into one report entry per qualified key."""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .correlator import JoinedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocaleBucket:
    """A report column collecting the values of every locale with a given prefix.

    The bucket flagged `include_neutral` also collects values from the
    culture-neutral resource file.
    """
    name: str
    prefix: str
    include_neutral: bool = False

    def matches(self, locale: Optional[str]) -> bool:
        if not locale:
            return self.include_neutral
        return locale.lower().startswith(self.prefix.lower())


@dataclass(frozen=True)
class ReportEntry:
    """The aggregated view of one qualified key."""
    qualified_key: str
    values: Dict[str, Optional[str]] = field(default_factory=dict, hash=False)
    description: str = ''
    usage_count: int = 0
    usage_paths: Tuple[str, ...] = ()
    defined: bool = False


def _describe(rows: Sequence[JoinedRecord]) -> str:
    comments = []
    for row in rows:
        if row.comment and row.comment.strip() and row.comment not in comments:
            comments.append(row.comment)
    return ','.join(comments)


def _warn_conflicts(qualified_key: str, rows: Sequence[JoinedRecord]):
    values_by_locale: Dict[Optional[str], set] = {}
    for row in rows:
        if row.value is not None:
            values_by_locale.setdefault(row.locale, set()).add(row.value)
    for locale, values in values_by_locale.items():
        if len(values) > 1:
            logger.warning("%s has %d different values for locale %s; keeping the greatest",
                           qualified_key, len(values), locale or 'neutral')


def aggregate(records: Iterable[JoinedRecord], buckets: Sequence[LocaleBucket],
              max_path_count: int) -> List[ReportEntry]:
    """Build the report entries.

    Args:
        records: Correlated rows
        buckets: Locale columns of the report
        max_path_count: Maximum number of usage paths kept per entry

    Returns:
        Entries sorted by qualified key

    Raises:
        ValueError: If max_path_count is not positive
    """
    if max_path_count < 1:
        raise ValueError(f"max_path_count must be positive, got {max_path_count}")

    groups: Dict[Tuple[str, str], List[JoinedRecord]] = {}
    for record in records:
        groups.setdefault((record.resource_name, record.key), []).append(record)

    entries = []
    for (resource_name, key), rows in groups.items():
        qualified_key = f"{resource_name}.{key}"
        _warn_conflicts(qualified_key, rows)

        values = {}
        for bucket in buckets:
            candidates = [row.value for row in rows if row.value is not None and bucket.matches(row.locale)]
            values[bucket.name] = max(candidates) if candidates else None

        paths = sorted({path for row in rows for path in row.call_sites})
        entries.append(ReportEntry(
            qualified_key=qualified_key,
            values=values,
            description=_describe(rows),
            usage_count=len(paths),
            usage_paths=tuple(paths[:max_path_count]),
            defined=any(row.value is not None for row in rows),
        ))

    entries.sort(key=lambda entry: entry.qualified_key)
    return entries
