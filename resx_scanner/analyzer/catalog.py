"""Resource catalog extraction: every key declared in a project's .resx files."""
import locale
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .resx_reader import ResxFormatError, read_resx
from .workspace import Project, Solution, is_excluded_path

logger = logging.getLogger(__name__)

# language[-Script][-REGION], e.g. en, ar-SA, zh-Hans, sr-Latn-RS, es-419
_CULTURE_RE = re.compile(r'^([A-Za-z]{2,3})(?:-[A-Za-z]{4})?(?:-(?:[A-Za-z]{2}|\d{3}))?$')

# Language subtags known to the interpreter's locale alias table
_KNOWN_LANGUAGES = frozenset(
    prefix for prefix in (re.split(r'[_.@]', alias)[0].lower() for alias in locale.locale_alias)
    if prefix.isalpha() and 2 <= len(prefix) <= 3
)


class CatalogError(Exception):
    """Raised when a resource file cannot be read; aborts the scan."""


@dataclass(frozen=True)
class CatalogEntry:
    """One key declared in a resource file."""
    resource_name: str
    key: str
    value: str
    comment: Optional[str] = None
    locale: Optional[str] = None


def is_known_culture(tag: str) -> bool:
    """Check whether a file-name segment is a culture tag such as 'ar-SA'."""
    match = _CULTURE_RE.match(tag)
    return bool(match) and match.group(1).lower() in _KNOWN_LANGUAGES


def split_culture(base_name: str) -> Tuple[str, Optional[str]]:
    """'SharedResource.ar-SA' -> ('SharedResource', 'ar-SA'); no culture -> (name, None)."""
    if '.' not in base_name:
        return base_name, None
    head, tail = base_name.rsplit('.', 1)
    if is_known_culture(tail):
        return head, tail
    return base_name, None


def resource_name_for(project: Project, path: Path) -> Tuple[str, Optional[str]]:
    """Compute (resource name, locale) of a .resx file inside `project`.

    The resource name is the project's default namespace, then the folders
    between the project directory and the file (spaces become underscores),
    then the file name without extension and culture.
    """
    base_name, culture = split_culture(path.stem)
    relative = path.parent.relative_to(project.directory)
    folders = [part.replace(' ', '_') for part in relative.parts]
    return '.'.join([project.default_namespace, *folders, base_name]), culture


class CatalogExtractor:
    """Collects CatalogEntries from every .resx file of a project or solution."""

    def extract(self, project: Project) -> List[CatalogEntry]:
        """Read every .resx file beneath the project directory.

        Args:
            project: Loaded project

        Returns:
            Entries in file path order, then document order

        Raises:
            CatalogError: If any resource file is unreadable or malformed
        """
        entries = []
        paths = (p for p in project.directory.rglob('*.resx') if not is_excluded_path(p, project.directory))
        for path in sorted(paths):
            resource_name, culture = resource_name_for(project, path)
            try:
                resx_entries = read_resx(path)
            except (OSError, ResxFormatError) as e:
                raise CatalogError(f"Cannot read resource file {path}: {e}") from e

            for entry in resx_entries:
                entries.append(CatalogEntry(resource_name, entry.key, entry.value, entry.comment, culture))
            logger.debug("%s: %d key(s) for %s (%s)", path, len(resx_entries), resource_name, culture or 'neutral')

        return entries

    def extract_solution(self, solution: Solution) -> List[CatalogEntry]:
        entries = []
        for project in solution.projects:
            entries.extend(self.extract(project))
        return entries
