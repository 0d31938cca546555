"""Tests for aggregator.py: locale buckets, descriptions, usage paths and ordering."""

import logging
import pytest
from resx_scanner.reporting.aggregator import LocaleBucket, ReportEntry, aggregate
from resx_scanner.reporting.correlator import JoinedRecord


BUCKETS = [LocaleBucket('En', 'en', include_neutral=True), LocaleBucket('Ar', 'ar')]


def row(key='Hello', value=None, comment=None, locale=None, sites=(), resource='R'):
    return JoinedRecord(resource, key, value, comment, locale, frozenset(sites))


class TestLocaleBucket:
    """Test locale-to-column matching."""

    def test_prefix_match(self):
        arabic = LocaleBucket('Ar', 'ar')
        assert arabic.matches('ar')
        assert arabic.matches('ar-SA')
        assert arabic.matches('AR-eg')
        assert not arabic.matches('en')

    def test_neutral_only_in_flagged_bucket(self):
        assert LocaleBucket('En', 'en', include_neutral=True).matches(None)
        assert not LocaleBucket('Ar', 'ar').matches(None)
        assert not LocaleBucket('Ar', 'ar').matches('')


class TestAggregate:
    """Test grouping of joined rows into report entries."""

    def test_values_per_bucket(self):
        (entry,) = aggregate([row(value='Hello'), row(value='مرحبا', locale='ar')], BUCKETS, 10)
        assert entry.qualified_key == 'R.Hello'
        assert entry.values == {'En': 'Hello', 'Ar': 'مرحبا'}
        assert entry.defined

    def test_regional_variants_keep_greatest_value(self, caplog):
        rows = [row(value='Bonjour', locale='ar-SA'), row(value='Ahlan', locale='ar-EG')]
        with caplog.at_level(logging.WARNING):
            (entry,) = aggregate(rows, BUCKETS, 10)

        assert entry.values == {'En': None, 'Ar': 'Bonjour'}
        assert caplog.text == ''

    def test_conflicting_values_for_one_locale_warn(self, caplog):
        rows = [row(value='a'), row(value='b')]
        with caplog.at_level(logging.WARNING):
            (entry,) = aggregate(rows, BUCKETS, 10)

        assert entry.values['En'] == 'b'
        assert 'R.Hello' in caplog.text

    def test_description_deduplicated_in_first_seen_order(self):
        rows = [row(value='x', comment='second'), row(value='y', comment='first', locale='ar'),
                row(value='z', comment='second', locale='ar-SA'), row(value='w', comment='  ')]
        (entry,) = aggregate(rows, BUCKETS, 10)
        assert entry.description == 'second,first'

    def test_usage_paths_sorted_deduplicated_and_truncated(self):
        rows = [
            row(value='v', sites=['b.cs', 'a.cs']),
            row(value='w', locale='ar', sites=['b.cs', 'a.cs']),
            row(sites=['c.cs']),
        ]
        (entry,) = aggregate(rows, BUCKETS, 2)

        assert entry.usage_count == 3
        assert entry.usage_paths == ('a.cs', 'b.cs')

    def test_undefined_key(self):
        (entry,) = aggregate([row(key='Missing', sites=['a.cs'])], BUCKETS, 10)
        assert entry == ReportEntry('R.Missing', {'En': None, 'Ar': None}, '', 1, ('a.cs',), False)

    def test_entries_sorted_ordinally(self):
        rows = [row(key='b', value='1'), row(key='B', value='2'), row(key='a', value='3', resource='Q')]
        keys = [entry.qualified_key for entry in aggregate(rows, BUCKETS, 10)]
        assert keys == ['Q.a', 'R.B', 'R.b']

    def test_rejects_non_positive_path_count(self):
        with pytest.raises(ValueError):
            aggregate([], BUCKETS, 0)
