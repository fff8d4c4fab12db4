"""Tests for the pattern registry and the registry-backed detector."""

import re

from dsense.classify import create_signal
from dsense.models import ChangedRange, DetectorOptions
from dsense.patterns import (
    DEFAULT_PATTERNS,
    PatternDef,
    PatternRegistry,
    PatternRegistryDetector,
    deduplicate,
    default_registry,
    detect_with_patterns,
)


def make_pattern(id, match=r'danger', framework=None, **kwargs):
    fields = {
        'name': id.title(),
        'description': f'{id} found',
        'match': re.compile(match),
        'category': 'side-effect',
        'weight': 0.9,
        'signal_class': 'critical',
        'confidence': 'high',
        'framework': framework,
    }
    fields.update(kwargs)
    return PatternDef(id=id, **fields)


class TestPatternRegistry:
    """Registration order, replacement and lookups"""

    def setup_method(self):
        self.registry = PatternRegistry(
            [
                make_pattern('first'),
                make_pattern('react-only', framework='react'),
                make_pattern('second'),
                make_pattern('vue-only', framework='vue'),
            ]
        )

    def test_registration_order(self):
        assert [p.id for p in self.registry.all()] == ['first', 'react-only', 'second', 'vue-only']
        assert len(self.registry) == 4

    def test_register_replaces_in_place(self):
        """Test re-registering an id keeps its original position."""
        replacement = make_pattern('first', match=r'other', weight=0.2)
        self.registry.register(replacement)

        assert [p.id for p in self.registry.all()] == ['first', 'react-only', 'second', 'vue-only']
        assert self.registry.get('first') is replacement
        assert len(self.registry) == 4

    def test_by_framework_puts_generic_first(self):
        """Test generic patterns precede framework patterns."""
        assert [p.id for p in self.registry.by_framework('react')] == ['first', 'second', 'react-only']

    def test_by_framework_generic(self):
        assert [p.id for p in self.registry.by_framework('generic')] == ['first', 'second']

    def test_by_framework_unknown_returns_generic_only(self):
        """Test unknown framework falls back to generic patterns."""
        assert [p.id for p in self.registry.by_framework('ember')] == ['first', 'second']

    def test_by_category(self):
        self.registry.register(make_pattern('nested', category='complexity'))
        assert [p.id for p in self.registry.by_category('complexity')] == ['nested']

    def test_frameworks(self):
        assert self.registry.frameworks() == ['generic', 'react', 'vue']

    def test_set_enabled(self):
        """Test disabled patterns stay registered but are hidden from all()."""
        self.registry.set_enabled('second', False)
        assert 'second' in self.registry
        assert [p.id for p in self.registry.all()] == ['first', 'react-only', 'vue-only']
        assert self.registry.get('second').enabled is False

        self.registry.set_enabled('second', True)
        assert [p.id for p in self.registry.all()] == ['first', 'react-only', 'second', 'vue-only']

    def test_set_enabled_unknown_id_ignored(self):
        self.registry.set_enabled('missing', False)
        assert 'missing' not in self.registry
        assert len(self.registry) == 4

    def test_get_missing(self):
        assert self.registry.get('missing') is None


class TestDefaultRegistry:
    """The built-in pattern table"""

    def test_ids_unique(self):
        ids = [p.id for p in DEFAULT_PATTERNS]
        assert len(ids) == len(set(ids))

    def test_default_registry_is_fresh(self):
        """Test each call builds a new registry."""
        one = default_registry()
        one.set_enabled('console-log', False)
        assert default_registry().get('console-log').enabled is True

    def test_frameworks(self):
        assert default_registry().frameworks() == ['generic', 'react', 'vue', 'angular', 'node']

    def test_to_dict(self):
        data = default_registry().get('react-dangerous-html').to_dict()
        assert data['id'] == 'react-dangerous-html'
        assert data['framework'] == 'react'
        assert data['class'] == 'critical'
        assert data['match'] == 'dangerouslySetInnerHTML'
        assert data['tags'] == ['react', 'security']
        assert data['enabled'] is True

    def test_to_dict_generic_framework(self):
        assert default_registry().get('console-log').to_dict()['framework'] == 'generic'


class TestPatternRegistryDetector:
    """Focus-line scanning against registry entries"""

    CONTENT = "console.log('x');\nconst a = 1;\nfetch('/api');\n"

    def setup_method(self):
        self.detector = PatternRegistryDetector(default_registry())

    def test_whole_file(self):
        signals = self.detector.detect(self.CONTENT, 'a.ts')
        assert [(s.id, s.lines) for s in signals] == [('console-log', [1]), ('network-fetch', [3])]
        assert all(s.in_changed_range for s in signals)
        assert all(s.file_path == 'a.ts' for s in signals)

    def test_signal_fields(self):
        """Test signal fields are copied from the matched pattern."""
        fetch = self.detector.detect(self.CONTENT, 'a.ts')[1]
        assert fetch.title == 'Network Fetch'
        assert fetch.signal_class == 'behavioral'
        assert fetch.severity == 'warn'
        assert fetch.snippet == "fetch('/api');"
        assert fetch.tags == ['network', 'io']
        assert fetch.meta == {'patternId': 'network-fetch', 'framework': None}
        assert fetch.evidence.kind == 'regex'
        assert fetch.evidence.details == {'matchText': 'fetch('}

    def test_focus_lines_only(self):
        options = DetectorOptions(changed_ranges=[ChangedRange(start_line=3, end_line=3)], context_lines=0)
        signals = self.detector.detect(self.CONTENT, 'a.ts', options)
        assert [s.id for s in signals] == ['network-fetch']

    def test_context_lines_not_changed(self):
        """Test padding lines produce signals outside the changed range."""
        options = DetectorOptions(changed_ranges=[ChangedRange(start_line=3, end_line=3)], context_lines=2)
        signals = self.detector.detect(self.CONTENT, 'a.ts', options)
        by_id = {s.id: s for s in signals}
        assert by_id['console-log'].in_changed_range is False
        assert by_id['network-fetch'].in_changed_range is True

    def test_ranges_past_end_of_file(self):
        options = DetectorOptions(changed_ranges=[ChangedRange(start_line=3, end_line=40)], context_lines=0)
        signals = self.detector.detect(self.CONTENT, 'a.ts', options)
        assert [s.id for s in signals] == ['network-fetch']

    def test_framework_filter(self):
        content = "eval('x');\nuseEffect(() => {\n"
        assert {s.id for s in self.detector.detect(content, 'a.tsx')} == {'node-eval', 'react-effect-no-deps'}

        react = self.detector.detect(content, 'a.tsx', framework='react')
        assert [s.id for s in react] == ['react-effect-no-deps']
        assert react[0].meta == {'patternId': 'react-effect-no-deps', 'framework': 'react'}
        assert react[0].severity == 'blocker'

        assert self.detector.detect(content, 'a.tsx', framework='generic') == []

    def test_disabled_pattern_skipped(self):
        registry = default_registry()
        registry.set_enabled('console-log', False)
        signals = PatternRegistryDetector(registry).detect(self.CONTENT, 'a.ts')
        assert [s.id for s in signals] == ['network-fetch']

    def test_empty_registry(self):
        assert PatternRegistryDetector(PatternRegistry()).detect(self.CONTENT, 'a.ts') == []
        assert detect_with_patterns(self.CONTENT, 'a.ts', registry=PatternRegistry()) == []

    def test_injected_registry(self):
        """Test custom registry patterns with derived class and default tags."""
        registry = PatternRegistry([make_pattern('custom-danger')])
        signals = PatternRegistryDetector(registry).detect('ok\nthis is danger\n', 'x.js')
        assert [(s.id, s.lines) for s in signals] == [('custom-danger', [2])]
        assert signals[0].severity == 'blocker'
        assert signals[0].tags == ['generic']

    def test_one_signal_per_pattern_and_line(self):
        """Test two matches on one line give one signal."""
        signals = self.detector.detect("fetch('/a'); fetch('/b');", 'a.ts')
        assert [s.id for s in signals] == ['network-fetch']

    def test_detect_with_patterns_uses_default_registry(self):
        signals = detect_with_patterns(self.CONTENT, 'a.ts')
        assert [s.id for s in signals] == ['console-log', 'network-fetch']

    def test_deterministic(self):
        assert self.detector.detect(self.CONTENT, 'a.ts') == self.detector.detect(self.CONTENT, 'a.ts')


class TestDeduplicate:
    def test_first_per_id_and_line_wins(self):
        first = create_signal(id='x', title='First', category='async', reason='r', weight=0.1, file_path='a', lines=[3])
        again = create_signal(id='x', title='Again', category='async', reason='r', weight=0.9, file_path='a', lines=[3])
        other = create_signal(id='x', title='Other', category='async', reason='r', weight=0.1, file_path='a', lines=[4])

        assert [s.title for s in deduplicate([first, again, other])] == ['First', 'Other']

    def test_keyed_on_first_line(self):
        """Test deduplication keys on id and first line only."""
        one = create_signal(id='y', title='One', category='async', reason='r', weight=0.1, file_path='a', lines=[2, 5])
        two = create_signal(id='y', title='Two', category='async', reason='r', weight=0.1, file_path='a', lines=[2, 9])
        assert [s.title for s in deduplicate([one, two])] == ['One']
