"""Solution and project loading.

Reads classic `.sln` files, XML `.slnx` files, single `.csproj` files or a
directory, and produces the projects of the solution (with their compiled
documents) ordered dependencies-first.
"""
import asyncio
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set

import networkx as nx

logger = logging.getLogger(__name__)

# Project("{TYPE-GUID}") = "Name", "relative\path.csproj", "{PROJECT-GUID}"
_SLN_PROJECT_RE = re.compile(
    r'^Project\("\{[^}]*\}"\)\s*=\s*"(?P<name>[^"]*)"\s*,\s*"(?P<path>[^"]*)"\s*,\s*"\{[^}]*\}"',
    re.MULTILINE,
)

_EXCLUDED_DIRS = {'bin', 'obj'}


class WorkspaceError(Exception):
    """Raised when the solution or one of its projects cannot be loaded."""


@dataclass
class Project:
    """A C# project: its identity, namespace settings and documents."""
    name: str
    file_path: Path
    root_namespace: Optional[str] = None
    assembly_name: Optional[str] = None
    documents: List[Path] = field(default_factory=list)
    references: List[Path] = field(default_factory=list)

    @property
    def directory(self) -> Path:
        return self.file_path.parent

    @property
    def default_namespace(self) -> str:
        return self.root_namespace or self.assembly_name or self.file_path.stem


@dataclass
class Solution:
    """Loaded projects plus the directory report paths are relative to."""
    file_path: Optional[Path]
    directory: Path
    projects: List[Project] = field(default_factory=list)

    @property
    def document_count(self) -> int:
        return sum(len(project.documents) for project in self.projects)


def _strip_namespaces(root: ET.Element):
    """Drop '{http://schemas.microsoft.com/developer/msbuild/2003}' from tags."""
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith('{'):
            element.tag = element.tag.split('}', 1)[1]


def is_excluded_path(path: Path, base: Path) -> bool:
    """True when `path` sits under bin/, obj/ or a hidden folder below `base`."""
    parts = path.relative_to(base).parts[:-1]
    return any(part in _EXCLUDED_DIRS or part.startswith('.') for part in parts)


def _normalize_item(value: str) -> str:
    return value.strip().replace('\\', '/')


def _expand_item(base: Path, pattern: str) -> List[Path]:
    """Expand one MSBuild item spec (file path or wildcard) to existing files."""
    pattern = _normalize_item(pattern)
    if not pattern:
        return []
    if not any(char in pattern for char in '*?'):
        candidate = (base / pattern).resolve()
        return [candidate] if candidate.is_file() else []

    while pattern.startswith('../'):
        base = base.parent
        pattern = pattern[3:]
    if pattern.endswith('**'):
        # 'Folder\**' means every file beneath Folder
        pattern += '/*'
    return sorted(path.resolve() for path in base.glob(pattern) if path.is_file())


class WorkspaceLoader:
    """Loads a Solution from a solution file, project file or directory."""

    async def open(self, source: str | Path) -> Solution:
        """Load the workspace off the event loop thread."""
        return await asyncio.to_thread(self.load, source)

    def load(self, source: str | Path) -> Solution:
        """Load the workspace.

        Args:
            source: .sln, .slnx or .csproj file, or a directory containing one

        Returns:
            Solution with projects ordered dependencies-first

        Raises:
            WorkspaceError: If the source is missing, unsupported or unreadable
        """
        path = Path(source).resolve()
        if not path.exists():
            raise WorkspaceError(f"Solution or project not found: {source}")

        if path.is_dir():
            return self._load_directory(path)

        suffix = path.suffix.lower()
        if suffix == '.sln':
            return self._load_solution(path, self._parse_sln(path))
        if suffix == '.slnx':
            return self._load_solution(path, self._parse_slnx(path))
        if suffix == '.csproj':
            return Solution(None, path.parent, [self.load_project(path)])

        raise WorkspaceError(f"Unsupported input (expected .sln, .slnx or .csproj): {source}")

    def _load_directory(self, directory: Path) -> Solution:
        solutions = sorted(p for p in directory.iterdir() if p.suffix.lower() in ('.sln', '.slnx') and p.is_file())
        if solutions:
            return self.load(solutions[0])

        project_files = sorted(
            p for p in directory.rglob('*.csproj') if not is_excluded_path(p, directory)
        )
        if not project_files:
            raise WorkspaceError(f"No solution or project files found in {directory}")
        return Solution(None, directory, self._order(self.load_project(p) for p in project_files))

    def _parse_sln(self, path: Path) -> List[tuple]:
        try:
            text = path.read_text(encoding='utf-8-sig')
        except (OSError, UnicodeDecodeError) as e:
            raise WorkspaceError(f"Cannot read solution {path}: {e}") from e

        return [
            (match.group('name'), _normalize_item(match.group('path')))
            for match in _SLN_PROJECT_RE.finditer(text)
            if match.group('path').lower().endswith('.csproj')
        ]

    def _parse_slnx(self, path: Path) -> List[tuple]:
        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as e:
            raise WorkspaceError(f"Cannot read solution {path}: {e}") from e

        _strip_namespaces(root)
        projects = []
        for element in root.iter('Project'):
            project_path = _normalize_item(element.get('Path', ''))
            if project_path.lower().endswith('.csproj'):
                projects.append((Path(project_path).stem, project_path))
        return projects

    def _load_solution(self, path: Path, entries: List[tuple]) -> Solution:
        projects = []
        seen: Set[Path] = set()
        for name, relative in entries:
            project_path = (path.parent / relative).resolve()
            if project_path in seen:
                continue
            seen.add(project_path)
            if not project_path.is_file():
                logger.warning("Project listed in %s not found: %s", path.name, relative)
                continue
            projects.append(self.load_project(project_path, name))

        logger.debug("Loaded %d project(s) from %s", len(projects), path)
        return Solution(path, path.parent, self._order(projects))

    def load_project(self, path: Path, name: Optional[str] = None) -> Project:
        """Parse a .csproj file and enumerate its compiled documents.

        SDK-style projects compile every `**/*.cs` outside bin/, obj/ and
        hidden folders unless EnableDefaultCompileItems is false. Explicit
        `<Compile Include/Remove>` items are applied on top.

        Raises:
            WorkspaceError: If the project file is unreadable or malformed
        """
        path = path.resolve()
        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as e:
            raise WorkspaceError(f"Cannot read project {path}: {e}") from e
        _strip_namespaces(root)

        def prop(property_name: str) -> Optional[str]:
            for element in root.iter(property_name):
                value = (element.text or '').strip()
                # Unevaluated MSBuild expressions are not namespaces
                if value and '$(' not in value:
                    return value
            return None

        is_sdk = bool(root.get('Sdk')) or root.find('Sdk') is not None \
            or any(element.get('Sdk') for element in root.iter('Import'))
        directory = path.parent

        documents: Set[Path] = set()
        if is_sdk and (prop('EnableDefaultCompileItems') or 'true').lower() != 'false':
            documents.update(
                p.resolve() for p in directory.rglob('*.cs')
                if p.is_file() and not is_excluded_path(p, directory)
            )

        for item in root.iter('Compile'):
            for pattern in (item.get('Include') or '').split(';'):
                documents.update(_expand_item(directory, pattern))
            for pattern in (item.get('Remove') or '').split(';'):
                documents.difference_update(_expand_item(directory, pattern))

        references = []
        for item in root.iter('ProjectReference'):
            include = item.get('Include')
            if include:
                references.append((directory / _normalize_item(include)).resolve())

        return Project(
            name=name or path.stem,
            file_path=path,
            root_namespace=prop('RootNamespace'),
            assembly_name=prop('AssemblyName'),
            documents=sorted(documents),
            references=references,
        )

    @staticmethod
    def _order(projects: Iterable[Project]) -> List[Project]:
        """Order projects dependencies-first, ties broken by declaration order."""
        projects = list(projects)
        position = {project.file_path: i for i, project in enumerate(projects)}
        by_path = {project.file_path: project for project in projects}

        graph = nx.DiGraph()
        graph.add_nodes_from(position)
        for project in projects:
            for reference in project.references:
                if reference in position and reference != project.file_path:
                    graph.add_edge(reference, project.file_path)

        try:
            order = list(nx.lexicographical_topological_sort(graph, key=lambda node: position[node]))
        except nx.NetworkXUnfeasible:
            logger.warning("Project references form a cycle; using declaration order")
            return projects
        return [by_path[node] for node in order]
