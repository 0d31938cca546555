"""Tests for resx_reader.py: .resx parsing and malformed-file detection."""

import pytest
from pathlib import Path
from resx_scanner.analyzer.resx_reader import ResxEntry, ResxFormatError, read_resx


FIXTURES_DIR = Path(__file__).parent / 'fixtures' / 'sample_solution'


def write(tmp_path: Path, content: str, name: str = 'Strings.resx') -> Path:
    path = tmp_path / name
    path.write_text(content, encoding='utf-8')
    return path


class TestReadResx:
    """Test reading well-formed resource files."""

    def test_reads_entries_in_document_order(self):
        """Data elements come back in order with values and comments."""
        entries = read_resx(FIXTURES_DIR / 'src' / 'Sample.Core' / 'Resources' / 'SharedResource.resx')

        assert [e.key for e in entries] == ['Hello', 'Farewell', 'Unused']
        assert entries[0] == ResxEntry('Hello', 'Hello', 'Greeting shown on the home page')
        assert entries[1].comment is None

    def test_resheaders_are_not_entries(self):
        """<resheader> elements are metadata, not keys."""
        entries = read_resx(FIXTURES_DIR / 'src' / 'Sample.Web' / 'Controllers' / 'HomeController.resx')
        assert entries == [ResxEntry('Welcome', 'Welcome!', None)]

    def test_unicode_values(self):
        """Non-ASCII values are preserved exactly."""
        entries = read_resx(FIXTURES_DIR / 'src' / 'Sample.Core' / 'Resources' / 'SharedResource.ar.resx')
        assert entries[0].value == 'مرحبا'

    def test_missing_value_reads_as_empty_string(self, tmp_path):
        path = write(tmp_path, '<root><data name="Empty"></data></root>')
        assert read_resx(path) == [ResxEntry('Empty', '', None)]


class TestMalformedResx:
    """Test failure modes."""

    def test_invalid_xml(self, tmp_path):
        path = write(tmp_path, '<root><data name="Broken"><value>x</data></root>')
        with pytest.raises(ResxFormatError):
            read_resx(path)

    def test_wrong_root_element(self, tmp_path):
        path = write(tmp_path, '<resources><data name="A"><value>a</value></data></resources>')
        with pytest.raises(ResxFormatError, match='expected <root>'):
            read_resx(path)

    def test_data_without_name(self, tmp_path):
        path = write(tmp_path, '<root><data><value>a</value></data></root>')
        with pytest.raises(ResxFormatError, match='without a name'):
            read_resx(path)

    def test_format_error_is_value_error(self):
        assert issubclass(ResxFormatError, ValueError)

    def test_missing_file_raises_os_error(self, tmp_path):
        with pytest.raises(OSError):
            read_resx(tmp_path / 'nope.resx')
