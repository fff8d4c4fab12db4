"""Tests for signal classification, validation and rollups."""

import pytest

from dsense.classify import (
    class_from_id,
    classify_signals,
    create_signal,
    risk_level,
    risk_score,
    severity_from,
    summarize_signals,
    validate_signal,
)
from dsense.focus import FocusWindow
from dsense.models import ActionRecommendation, ChangedRange


def make_signal(id='network-fetch', weight=0.5, signal_class=None, lines=(1,), focus=None, **kwargs):
    return create_signal(
        id=id,
        title=id,
        category='side-effect',
        reason=f'{id} reason',
        weight=weight,
        file_path='src/a.ts',
        lines=list(lines),
        signal_class=signal_class,
        focus=focus,
        **kwargs,
    )


class TestClassFromId:
    """Keyword-based class mapping."""

    @pytest.mark.parametrize(
        'signal_id,expected',
        [
            ('auth-boundary', 'critical'),
            ('payment-logic', 'critical'),
            ('sec-api-key-leak', 'critical'),
            ('network-fetch', 'behavioral'),
            ('react-effect-no-deps', 'behavioral'),
            ('deep-nesting', 'maintainability'),
            ('large-file', 'maintainability'),
        ],
    )
    def test_mapping(self, signal_id, expected):
        assert class_from_id(signal_id) == expected

    def test_critical_keywords_win(self):
        """Test critical keywords are checked before behavioral ones."""
        # 'async' is behavioral but 'auth' is checked first
        assert class_from_id('auth-async-leak') == 'critical'

    def test_case_insensitive(self):
        assert class_from_id('AUTH-Check') == 'critical'


class TestSeverityFrom:
    """Severity thresholds per class."""

    @pytest.mark.parametrize(
        'signal_class,weight,expected',
        [
            ('critical', 0.6, 'blocker'),
            ('critical', 0.59, 'warn'),
            ('critical', 0.3, 'warn'),
            ('critical', 0.29, 'info'),
            ('behavioral', 0.7, 'blocker'),
            ('behavioral', 0.69, 'warn'),
            ('behavioral', 0.4, 'warn'),
            ('behavioral', 0.39, 'info'),
            ('maintainability', 1.0, 'info'),
            ('unknown', 0.9, 'info'),
        ],
    )
    def test_thresholds(self, signal_class, weight, expected):
        assert severity_from(signal_class, weight) == expected


class TestCreateSignal:
    """Signal construction."""

    def test_class_derived_from_id(self):
        signal = make_signal(id='auth-check', weight=0.9)
        assert signal.signal_class == 'critical'
        assert signal.severity == 'blocker'

    def test_explicit_class_overrides_id(self):
        signal = make_signal(id='auth-check', weight=0.9, signal_class='maintainability')
        assert signal.signal_class == 'maintainability'
        assert signal.severity == 'info'

    def test_default_confidence_medium(self):
        assert make_signal().confidence == 'medium'

    def test_in_changed_range(self):
        """Test changed-range flag needs a focus window containing the line."""
        focus = FocusWindow.compute(20, [ChangedRange(start_line=5, end_line=6)])
        assert make_signal(lines=[5], focus=focus).in_changed_range
        assert not make_signal(lines=[8], focus=focus).in_changed_range
        assert not make_signal(lines=[5]).in_changed_range

    def test_wire_form_uses_class_alias(self):
        data = make_signal().to_dict()
        assert data['class'] == 'behavioral'
        assert data['filePath'] == 'src/a.ts'
        assert data['inChangedRange'] is False
        assert 'actions' not in data


class TestValidateSignal:
    """Structural validation returns errors instead of raising."""

    def test_valid_signal(self):
        result = validate_signal(make_signal())
        assert result.valid
        assert result.errors == []

    def test_blocker_without_actions(self):
        result = validate_signal(make_signal(id='auth-check', weight=0.9))
        assert not result.valid
        assert 'Blocker signals must have at least one action' in result.errors

    def test_blocker_with_actions(self):
        action = ActionRecommendation(type='review_request', text='Review', reviewers=['@security-team'])
        assert validate_signal(make_signal(id='auth-check', weight=0.9, actions=[action])).valid

    def test_mapping_missing_fields(self):
        """Test plain mappings report every missing required field."""
        result = validate_signal({'id': 'x', 'title': '', 'severity': 'info'})
        assert not result.valid
        assert 'Missing required field: title' in result.errors
        assert 'Missing required field: reason' in result.errors
        assert 'Missing required field: filePath' in result.errors

    def test_not_a_signal(self):
        result = validate_signal(42)
        assert not result.valid


class TestRollups:
    """Summary, class grouping and risk score."""

    def test_summarize(self):
        focus = FocusWindow.compute(10, [ChangedRange(start_line=1, end_line=1)])
        signals = [
            make_signal(lines=[1], focus=focus),
            make_signal(lines=[5], focus=focus),
            make_signal(id='deep-nesting', lines=[1], focus=focus),
        ]
        summary = summarize_signals(signals)
        assert summary.total == 3
        assert summary.by_type == {'network-fetch': 2, 'deep-nesting': 1}
        assert summary.by_category == {'side-effect': 3}
        assert summary.changed_line_signals == 2

    def test_summarize_empty(self):
        assert summarize_signals([]).total == 0

    def test_classify_adjusts_weights(self):
        """Test critical grouping scales the weight and keeps the original in meta."""
        classified = classify_signals([make_signal(id='auth-x', weight=0.4)])
        adjusted = classified['critical'][0]
        assert adjusted.weight == pytest.approx(0.6)
        assert adjusted.meta['originalWeight'] == 0.4

    def test_classify_does_not_mutate_input(self):
        original = make_signal(id='auth-x', weight=0.4)
        classify_signals([original])
        assert original.weight == 0.4
        assert original.meta is None

    def test_risk_score_caps(self):
        """Test per-class contributions are capped at 5, 3 and 1."""
        signals = [make_signal(id=f'auth-{i}', weight=1.0) for i in range(10)]
        signals += [make_signal(id=f'network-{i}', weight=1.0) for i in range(10)]
        signals += [make_signal(id=f'style-{i}', weight=1.0) for i in range(10)]
        score = risk_score(signals)
        assert score.critical == 5.0
        assert score.behavioral == 3.0
        assert score.maintainability == 1.0
        assert score.total == 9.0
        assert score.level == 'CRITICAL'
        assert score.max_severity == 'blocker'
        assert score.confidence == 1.0
        assert score.reasons[0].startswith('Critical: auth-0, auth-1, auth-2')

    def test_risk_score_empty(self):
        score = risk_score([])
        assert score.total == 0.0
        assert score.level == 'LOW'
        assert score.max_severity == 'info'
        assert score.reasons == []

    @pytest.mark.parametrize('score,level', [(0, 'LOW'), (3, 'MED'), (6, 'HIGH'), (8, 'CRITICAL'), (10, 'CRITICAL')])
    def test_risk_level(self, score, level):
        assert risk_level(score) == level
