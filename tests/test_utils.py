"""Tests for environment helpers and line-range parsing."""

import logging

import pytest

from dsense.errors import DsenseError, InvalidRangeError
from dsense.utils import (
    get_bool_env,
    get_context_lines,
    get_default_profile,
    get_int_env,
    get_max_workers,
    get_str_env,
    parse_line_ranges,
    setup_logging,
)


class TestEnvHelpers:
    def test_int_env_unset(self):
        assert get_int_env('DSENSE_TEST_INT') == 0

    def test_int_env_invalid(self, monkeypatch):
        """Test non-numeric value falls back to 0."""
        monkeypatch.setenv('DSENSE_TEST_INT', 'lots')
        assert get_int_env('DSENSE_TEST_INT') == 0

    def test_int_env_value(self, monkeypatch):
        monkeypatch.setenv('DSENSE_TEST_INT', '42')
        assert get_int_env('DSENSE_TEST_INT') == 42

    def test_str_env(self, monkeypatch):
        assert get_str_env('DSENSE_TEST_STR', 'fallback') == 'fallback'
        monkeypatch.setenv('DSENSE_TEST_STR', 'value')
        assert get_str_env('DSENSE_TEST_STR', 'fallback') == 'value'

    @pytest.mark.parametrize(
        'raw,expected',
        [('true', True), ('YES', True), ('1', True), ('false', False), ('No', False), ('0', False)],
    )
    def test_bool_env(self, monkeypatch, raw, expected):
        monkeypatch.setenv('DSENSE_TEST_BOOL', raw)
        assert get_bool_env('DSENSE_TEST_BOOL', not expected) is expected

    def test_bool_env_unrecognised_uses_default(self, monkeypatch):
        monkeypatch.setenv('DSENSE_TEST_BOOL', 'maybe')
        assert get_bool_env('DSENSE_TEST_BOOL', True) is True
        assert get_bool_env('DSENSE_TEST_BOOL', False) is False


class TestConfigDefaults:
    """Settings read from DSENSE_* variables"""

    def test_defaults(self):
        assert get_context_lines() == 5
        assert get_max_workers() == 10
        assert get_default_profile() == 'auto'

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv('DSENSE_CONTEXT_LINES', '2')
        monkeypatch.setenv('DSENSE_MAX_WORKERS', '3')
        monkeypatch.setenv('DSENSE_PROFILE', 'vue')
        assert get_context_lines() == 2
        assert get_max_workers() == 3
        assert get_default_profile() == 'vue'

    def test_non_positive_falls_back(self, monkeypatch):
        """Test zero and negative values fall back to defaults."""
        monkeypatch.setenv('DSENSE_CONTEXT_LINES', '0')
        monkeypatch.setenv('DSENSE_MAX_WORKERS', '-4')
        assert get_context_lines() == 5
        assert get_max_workers() == 10

    def test_setup_logging_level(self, monkeypatch):
        """Test level from env, explicit argument and unknown name."""
        calls = []
        monkeypatch.setattr(logging, 'basicConfig', lambda **kwargs: calls.append(kwargs))
        monkeypatch.setenv('DSENSE_LOG_LEVEL', 'debug')

        setup_logging()
        setup_logging('error')
        setup_logging('nonsense')

        assert [c['level'] for c in calls] == [logging.DEBUG, logging.ERROR, logging.WARNING]


class TestParseLineRanges:
    def test_single_lines_and_spans(self):
        ranges = parse_line_ranges('10-20,35, 40-41')
        assert [(r.start_line, r.end_line) for r in ranges] == [(10, 20), (35, 35), (40, 41)]
        assert all(r.type == 'modified' for r in ranges)

    def test_empty_parts_skipped(self):
        assert [(r.start_line, r.end_line) for r in parse_line_ranges('3,,4,')] == [(3, 3), (4, 4)]

    def test_empty_string(self):
        assert parse_line_ranges('') == []

    @pytest.mark.parametrize('text', ['abc', '0', '5-2', '1-x', '-3'])
    def test_invalid(self, text):
        with pytest.raises(InvalidRangeError):
            parse_line_ranges(text)

    def test_error_hierarchy(self):
        """Test InvalidRangeError is both a DsenseError and a ValueError."""
        with pytest.raises(DsenseError, match="Invalid line range 'abc'"):
            parse_line_ranges('abc')
        with pytest.raises(ValueError):
            parse_line_ranges('abc')
