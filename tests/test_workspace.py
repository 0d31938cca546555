"""Tests for workspace.py: solution/project loading and dependency ordering."""

import logging
import pytest
from pathlib import Path
from resx_scanner.analyzer.workspace import WorkspaceError, WorkspaceLoader


FIXTURES_DIR = Path(__file__).parent / 'fixtures' / 'sample_solution'
SOLUTION = FIXTURES_DIR / 'Sample.sln'

SDK_PROJECT = '<Project Sdk="Microsoft.NET.Sdk"><PropertyGroup>{props}</PropertyGroup>{items}</Project>'


def make_project(directory: Path, name: str, props: str = '', items: str = '') -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f'{name}.csproj'
    path.write_text(SDK_PROJECT.format(props=props, items=items), encoding='utf-8')
    return path


def touch(path: Path, content: str = 'class A {}'):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding='utf-8')


@pytest.fixture
def loader():
    return WorkspaceLoader()


class TestSolutionLoading:
    """Test .sln parsing against the sample solution."""

    def test_projects_in_dependency_order(self, loader):
        """Sample.Web references Sample.Core, so Core loads first despite declaration order."""
        solution = loader.load(SOLUTION)
        assert [p.name for p in solution.projects] == ['Sample.Core', 'Sample.Web']
        assert solution.directory == FIXTURES_DIR.resolve()

    def test_sdk_projects_glob_sources(self, loader):
        solution = loader.load(SOLUTION)
        web = solution.projects[1]

        names = sorted(p.relative_to(web.directory).as_posix() for p in web.documents)
        assert names == ['Controllers/HomeController.cs', 'Program.cs']
        assert solution.document_count == 4

    def test_namespaces(self, loader):
        core, web = loader.load(SOLUTION).projects
        assert core.default_namespace == 'Sample.Core'
        assert web.default_namespace == 'Sample.Web'

    def test_directory_input_uses_solution_file(self, loader):
        solution = loader.load(FIXTURES_DIR)
        assert solution.file_path == SOLUTION.resolve()

    def test_project_input(self, loader):
        solution = loader.load(FIXTURES_DIR / 'src' / 'Sample.Core' / 'Sample.Core.csproj')
        assert [p.name for p in solution.projects] == ['Sample.Core']
        assert solution.file_path is None

    def test_missing_source(self, loader, tmp_path):
        with pytest.raises(WorkspaceError, match='not found'):
            loader.load(tmp_path / 'Missing.sln')

    def test_unsupported_input(self, loader, tmp_path):
        path = tmp_path / 'notes.txt'
        path.write_text('hi')
        with pytest.raises(WorkspaceError, match='Unsupported'):
            loader.load(path)

    def test_missing_project_is_skipped(self, loader, tmp_path, caplog):
        make_project(tmp_path / 'A', 'A')
        sln = tmp_path / 'Test.sln'
        sln.write_text(
            'Project("{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}") = "A", "A\\A.csproj", "{11111111-1111-1111-1111-111111111111}"\n'
            'EndProject\n'
            'Project("{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}") = "Gone", "Gone\\Gone.csproj", "{22222222-2222-2222-2222-222222222222}"\n'
            'EndProject\n',
            encoding='utf-8',
        )

        with caplog.at_level(logging.WARNING):
            solution = loader.load(sln)

        assert [p.name for p in solution.projects] == ['A']
        assert 'Gone' in caplog.text

    def test_slnx(self, loader, tmp_path):
        make_project(tmp_path / 'src' / 'Lib', 'Lib')
        slnx = tmp_path / 'Test.slnx'
        slnx.write_text(
            '<Solution><Folder Name="/src/"><Project Path="src/Lib/Lib.csproj" /></Folder></Solution>',
            encoding='utf-8',
        )

        solution = loader.load(slnx)
        assert [p.name for p in solution.projects] == ['Lib']

    async def test_open_is_async(self, loader):
        solution = await loader.open(SOLUTION)
        assert len(solution.projects) == 2


class TestProjectLoading:
    """Test .csproj parsing rules."""

    def test_excludes_build_output_and_hidden_folders(self, loader, tmp_path):
        path = make_project(tmp_path, 'App')
        touch(tmp_path / 'Model.cs')
        touch(tmp_path / 'obj' / 'Debug' / 'Generated.cs')
        touch(tmp_path / 'bin' / 'Out.cs')
        touch(tmp_path / '.vs' / 'Hidden.cs')

        project = loader.load_project(path)
        assert [p.name for p in project.documents] == ['Model.cs']

    def test_compile_remove_and_include(self, loader, tmp_path):
        outside = tmp_path / 'Shared' / 'Linked.cs'
        touch(outside)
        path = make_project(
            tmp_path / 'App', 'App',
            items='<ItemGroup><Compile Remove="Legacy\\**" /><Compile Include="..\\Shared\\Linked.cs" /></ItemGroup>',
        )
        touch(tmp_path / 'App' / 'Legacy' / 'Old.cs')
        touch(tmp_path / 'App' / 'New.cs')

        project = loader.load_project(path)
        assert sorted(p.name for p in project.documents) == ['Linked.cs', 'New.cs']

    def test_default_compile_items_disabled(self, loader, tmp_path):
        path = make_project(tmp_path, 'App', props='<EnableDefaultCompileItems>false</EnableDefaultCompileItems>')
        touch(tmp_path / 'Model.cs')

        assert loader.load_project(path).documents == []

    def test_msbuild_expressions_are_not_namespaces(self, loader, tmp_path):
        path = make_project(tmp_path, 'App', props='<RootNamespace>$(MSBuildProjectName)</RootNamespace>')
        assert loader.load_project(path).default_namespace == 'App'

    def test_malformed_project(self, loader, tmp_path):
        path = tmp_path / 'Bad.csproj'
        path.write_text('<Project>', encoding='utf-8')
        with pytest.raises(WorkspaceError):
            loader.load_project(path)


class TestDirectoryLoading:
    """Test directories without a solution file."""

    def test_all_projects_in_dependency_order(self, loader, tmp_path):
        make_project(tmp_path / 'a', 'A', items='<ItemGroup><ProjectReference Include="..\\b\\B.csproj" /></ItemGroup>')
        make_project(tmp_path / 'b', 'B')
        make_project(tmp_path / 'b' / 'obj', 'Ignored')

        solution = loader.load(tmp_path)
        assert [p.name for p in solution.projects] == ['B', 'A']

    def test_reference_cycle_falls_back_to_declaration_order(self, loader, tmp_path, caplog):
        make_project(tmp_path / 'a', 'A', items='<ItemGroup><ProjectReference Include="..\\b\\B.csproj" /></ItemGroup>')
        make_project(tmp_path / 'b', 'B', items='<ItemGroup><ProjectReference Include="..\\a\\A.csproj" /></ItemGroup>')

        with caplog.at_level(logging.WARNING):
            solution = loader.load(tmp_path)

        assert [p.name for p in solution.projects] == ['A', 'B']
        assert 'cycle' in caplog.text

    def test_empty_directory(self, loader, tmp_path):
        with pytest.raises(WorkspaceError, match='No solution or project'):
            loader.load(tmp_path)
