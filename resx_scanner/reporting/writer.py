"""Serialize report entries to the JSON artifact."""
import json
import logging
import os
import tempfile
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from .aggregator import LocaleBucket, ReportEntry

logger = logging.getLogger(__name__)


def build_report(entries: Iterable[ReportEntry], buckets: Sequence[LocaleBucket]) -> Dict[str, Any]:
    """Convert entries to the output mapping, preserving entry order.

    Output shape per key:
        {"En": ..., "Ar": ..., "Desc": ..., "Usage": {"Count": n, "Paths": [...]}}
    """
    report: Dict[str, Any] = OrderedDict()
    for entry in entries:
        if entry.qualified_key in report:
            logger.warning("Duplicate report key %s; keeping the first entry", entry.qualified_key)
            continue

        item: Dict[str, Any] = OrderedDict()
        for bucket in buckets:
            item[bucket.name] = entry.values.get(bucket.name)
        item['Desc'] = entry.description
        item['Usage'] = OrderedDict([
            ('Count', entry.usage_count),
            ('Paths', list(entry.usage_paths)),
        ])
        report[entry.qualified_key] = item
    return report


def to_json_bytes(report: Dict[str, Any], indent: Optional[int] = None) -> bytes:
    """UTF-8 JSON; compact unless an indent is given. Non-ASCII is kept as-is."""
    if indent is None:
        text = json.dumps(report, ensure_ascii=False, separators=(',', ':'))
    else:
        text = json.dumps(report, ensure_ascii=False, indent=indent)
    return text.encode('utf-8')


def write_report(path: str | Path, data: bytes) -> Path:
    """Atomically write `data` to `path` (temporary file in the same directory, then rename).

    Returns:
        The resolved destination path
    """
    path = Path(path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(temp_name, path)
    except BaseException:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise

    logger.debug("Wrote %d bytes to %s", len(data), path)
    return path
