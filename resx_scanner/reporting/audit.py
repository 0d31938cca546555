"""Consistency checks over report entries: unused, undefined and untranslated keys."""
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .aggregator import LocaleBucket, ReportEntry


@dataclass
class AuditFindings:
    unused: List[str] = field(default_factory=list)
    undefined: List[str] = field(default_factory=list)
    missing: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def issue_count(self) -> int:
        return len(self.unused) + len(self.undefined) + sum(len(keys) for keys in self.missing.values())


def audit(entries: Sequence[ReportEntry], buckets: Sequence[LocaleBucket]) -> AuditFindings:
    """Classify report entries.

    - unused: defined in a resource file but never referenced
    - undefined: referenced in code but defined nowhere
    - missing: defined, but without a value for a locale bucket
    """
    findings = AuditFindings(missing={bucket.name: [] for bucket in buckets})
    for entry in entries:
        if not entry.defined:
            findings.undefined.append(entry.qualified_key)
            continue
        if entry.usage_count == 0:
            findings.unused.append(entry.qualified_key)
        for bucket in buckets:
            if entry.values.get(bucket.name) is None:
                findings.missing[bucket.name].append(entry.qualified_key)
    return findings
