"""Tests for catalog.py: culture detection, resource naming and extraction."""

import pytest
from pathlib import Path
from resx_scanner.analyzer.catalog import (
    CatalogEntry,
    CatalogError,
    CatalogExtractor,
    is_known_culture,
    resource_name_for,
    split_culture,
)
from resx_scanner.analyzer.workspace import Project, WorkspaceLoader


FIXTURES_DIR = Path(__file__).parent / 'fixtures' / 'sample_solution'
CORE_PROJECT = FIXTURES_DIR / 'src' / 'Sample.Core' / 'Sample.Core.csproj'


@pytest.fixture
def core_project():
    return WorkspaceLoader().load_project(CORE_PROJECT)


class TestCultureDetection:
    """Test recognition of culture suffixes in file names."""

    @pytest.mark.parametrize('tag', ['en', 'ar', 'ar-SA', 'fr-FR', 'zh-Hans', 'sr-Latn-RS', 'es-419'])
    def test_known_cultures(self, tag):
        assert is_known_culture(tag)

    @pytest.mark.parametrize('tag', ['Designer', 'Messages', 'x', 'en-', 'en_US', '12'])
    def test_not_cultures(self, tag):
        assert not is_known_culture(tag)

    def test_split_culture(self):
        assert split_culture('SharedResource.ar-SA') == ('SharedResource', 'ar-SA')
        assert split_culture('SharedResource') == ('SharedResource', None)
        assert split_culture('Shared.Messages') == ('Shared.Messages', None)

    def test_culture_kept_as_written(self):
        """Locale tags are not case-normalized."""
        assert split_culture('Labels.EN-us') == ('Labels', 'EN-us')


class TestResourceNames:
    """Test resource name derivation from project layout."""

    def test_namespace_folders_and_base_name(self, tmp_path):
        project = Project('Web', tmp_path / 'Web.csproj', root_namespace='Company.Web')
        path = tmp_path / 'Resources' / 'Views' / 'Home.fr.resx'

        assert resource_name_for(project, path) == ('Company.Web.Resources.Views.Home', 'fr')

    def test_spaces_in_folders_become_underscores(self, tmp_path):
        project = Project('Web', tmp_path / 'Web.csproj')
        path = tmp_path / 'My Resources' / 'Labels.resx'

        assert resource_name_for(project, path) == ('Web.My_Resources.Labels', None)

    def test_default_namespace_fallbacks(self, tmp_path):
        assert Project('A', tmp_path / 'A.csproj', assembly_name='Asm').default_namespace == 'Asm'
        assert Project('A', tmp_path / 'A.csproj').default_namespace == 'A'
        assert Project('A', tmp_path / 'A.csproj', 'Root', 'Asm').default_namespace == 'Root'


class TestCatalogExtractor:
    """Test extraction over the sample solution."""

    def test_extracts_neutral_and_localized_entries(self, core_project):
        entries = CatalogExtractor().extract(core_project)
        name = 'Sample.Core.Resources.SharedResource'

        assert CatalogEntry(name, 'Hello', 'مرحبا', None, 'ar') in entries
        assert CatalogEntry(name, 'Hello', 'Hello', 'Greeting shown on the home page', None) in entries
        assert CatalogEntry(name, 'Unused', 'Never used', None, None) in entries
        assert len(entries) == 5

    def test_extraction_order_is_deterministic(self, core_project):
        extractor = CatalogExtractor()
        assert extractor.extract(core_project) == extractor.extract(core_project)

    def test_extract_solution_covers_all_projects(self):
        solution = WorkspaceLoader().load(FIXTURES_DIR / 'Sample.sln')
        entries = CatalogExtractor().extract_solution(solution)

        resource_names = {entry.resource_name for entry in entries}
        assert resource_names == {
            'Sample.Core.Resources.SharedResource',
            'Sample.Web.Controllers.HomeController',
        }

    def test_malformed_file_aborts(self, tmp_path):
        (tmp_path / 'Broken.resx').write_text('<root><data name="A">', encoding='utf-8')
        project = Project('Broken', tmp_path / 'Broken.csproj')

        with pytest.raises(CatalogError, match='Broken.resx'):
            CatalogExtractor().extract(project)

    def test_build_output_is_skipped(self, tmp_path):
        (tmp_path / 'obj').mkdir()
        (tmp_path / 'obj' / 'Copy.resx').write_text('<root><data name="A"><value>a</value></data></root>',
                                                     encoding='utf-8')
        project = Project('App', tmp_path / 'App.csproj')

        assert CatalogExtractor().extract(project) == []
