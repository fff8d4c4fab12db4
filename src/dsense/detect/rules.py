"""Declarative line rules, bounded windows and the per-file scan context."""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from dsense.classify import create_signal
from dsense.focus import FocusWindow
from dsense.models import (
    ActionRecommendation,
    Confidence,
    DetectorOptions,
    Evidence,
    EvidenceKind,
    Signal,
    SignalCategory,
    SignalClass,
)


@dataclass(frozen=True)
class FileContext:
    """Everything a probe may look at for one file.

    Built once per detection call and never shared across files.
    """

    path: str  # File path, only used for string matching
    content: str  # Full file content
    lines: list[str]  # content.split('\n')
    focus: FocusWindow  # Changed and focus line sets

    @classmethod
    def build(cls, content: str, path: str, options: DetectorOptions | None = None) -> 'FileContext':
        options = options or DetectorOptions()
        lines = content.split('\n')
        focus = FocusWindow.compute(len(lines), options.changed_ranges, options.context_lines)
        return cls(path=path, content=content, lines=lines, focus=focus)

    def focus_indices(self) -> Iterator[int]:
        """Yield 0-based indices of focus lines that exist in the file."""
        for line_number in self.focus.focus_lines():
            if 1 <= line_number <= len(self.lines):
                yield line_number - 1

    def is_changed(self, index: int) -> bool:
        return self.focus.is_changed_line(index + 1)

    def snippet(self, start_line: int, end_line: int | None = None) -> str:
        """Lines start_line..end_line (1-based, inclusive) joined by newlines."""
        start = max(0, start_line - 1)
        end = min(len(self.lines), end_line) if end_line else start + 1
        return '\n'.join(self.lines[start:end])

    def around(self, index: int, before: int = 0, after: int = 1) -> list[str]:
        """Bounded slice lines[index - before : index + after], clipped to the file."""
        return self.lines[max(0, index - before) : max(0, index + after)]

    def ahead(self, index: int, size: int) -> list[str]:
        """The current line and the following size - 1 lines."""
        return self.around(index, 0, size)

    def behind(self, index: int, size: int) -> list[str]:
        """The size lines preceding index (current line excluded)."""
        return self.around(index, size, 0)

    def following(self, index: int, size: int) -> list[str]:
        """The size lines after index (current line excluded)."""
        return self.lines[index + 1 : index + 1 + size]

    def signal(self, **kwargs) -> Signal:
        """Create a signal for this file."""
        return create_signal(file_path=self.path, focus=self.focus, **kwargs)

    def line_signal(self, index: int, **kwargs) -> Signal:
        """Create a signal anchored at a single 0-based line index."""
        kwargs.setdefault('snippet', self.lines[index])
        return self.signal(lines=[index + 1], **kwargs)


def text(lines: Iterable[str], sep: str = '\n') -> str:
    return sep.join(lines)


Probe = Callable[[FileContext], list[Signal]]
FilePredicate = Callable[[FileContext], bool]


@dataclass(frozen=True)
class Rule:
    """One row of a declarative single-line rule table.

    A rule fires on a focus line when ``pattern`` matches it and, if set,
    ``requires`` matches somewhere in the window and ``forbids`` matches
    nowhere in the window. The window is ``lines[i - before : i + after]``;
    the default covers just the current line.
    """

    id: str
    pattern: re.Pattern
    category: SignalCategory
    title: str
    reason: str
    weight: float
    signal_class: SignalClass | None = None
    confidence: Confidence | None = None
    tags: tuple[str, ...] = ()
    evidence_kind: EvidenceKind = 'regex'
    actions: tuple[ActionRecommendation, ...] = ()
    requires: re.Pattern | None = None
    forbids: re.Pattern | None = None
    before: int = 0
    after: int = 1
    when: FilePredicate | None = None  # file-level gate, e.g. only .ts files
    snippet: str | None = None  # fixed snippet, e.g. for redaction
    meta: dict = field(default_factory=dict)

    def applies_to(self, ctx: FileContext) -> bool:
        return self.when is None or self.when(ctx)

    def match(self, ctx: FileContext, index: int) -> re.Match | None:
        """Return the match for line ``index`` if every condition holds."""
        found = self.pattern.search(ctx.lines[index])
        if found is None:
            return None
        if self.requires is None and self.forbids is None:
            return found
        window = text(ctx.around(index, self.before, self.after))
        if self.requires is not None and not self.requires.search(window):
            return None
        if self.forbids is not None and self.forbids.search(window):
            return None
        return found


def rule_signal(ctx: FileContext, rule: Rule, index: int, found: re.Match) -> Signal:
    """Turn a rule match into a signal."""
    details = {'matchText': found.group(0)}
    if rule.meta:
        details.update(rule.meta)
    return ctx.line_signal(
        index,
        id=rule.id,
        title=rule.title,
        category=rule.category,
        reason=rule.reason,
        weight=rule.weight,
        snippet=rule.snippet if rule.snippet is not None else ctx.lines[index],
        confidence=rule.confidence,
        signal_class=rule.signal_class,
        tags=list(rule.tags) or None,
        evidence=Evidence(kind=rule.evidence_kind, pattern=rule.pattern.pattern, details=details),
        actions=list(rule.actions) or None,
    )


def scan_rules(ctx: FileContext, rules: Iterable[Rule]) -> list[Signal]:
    """Evaluate a rule table over every focus line.

    Each rule fires at most once per line. Lines are visited in ascending
    order and rules in table order.
    """
    active = [rule for rule in rules if rule.applies_to(ctx)]
    if not active:
        return []

    signals = []
    for index in ctx.focus_indices():
        for rule in active:
            found = rule.match(ctx, index)
            if found is not None:
                signals.append(rule_signal(ctx, rule, index, found))
    return signals


def first_match_rule(
    *,
    id: str,
    patterns: Iterable[tuple[re.Pattern, str]],
    category: SignalCategory,
    title: str,
    reason: str,
    weight: float,
    **kwargs,
) -> Probe:
    """Probe emitting at most one signal per line for the first matching pattern.

    ``reason`` may contain ``{name}``, filled with the label of the pattern
    that matched.
    """
    patterns = tuple(patterns)

    def probe(ctx: FileContext) -> list[Signal]:
        signals = []
        for index in ctx.focus_indices():
            line = ctx.lines[index]
            for pattern, name in patterns:
                if pattern.search(line):
                    signals.append(
                        ctx.line_signal(
                            index,
                            id=id,
                            title=title,
                            category=category,
                            reason=reason.format(name=name),
                            weight=weight,
                            evidence=Evidence(kind='regex', pattern=pattern.pattern),
                            **kwargs,
                        )
                    )
                    break
        return signals

    return probe


def count_rule(
    *,
    id: str,
    pattern: re.Pattern,
    category: SignalCategory,
    title: str,
    reason: str,
    per_match: float = 0.0,
    weight: float | None = None,
    minimum: int = 1,
    max_lines: int | None = None,
    evidence_kind: EvidenceKind = 'regex',
    **kwargs,
) -> Probe:
    """Aggregate probe: one signal for all focus lines matching ``pattern``.

    Fires when at least ``minimum`` lines match. Weight is ``weight`` when
    given, else ``per_match * count``. ``reason`` may contain ``{count}``.
    """

    def probe(ctx: FileContext) -> list[Signal]:
        hits = [index + 1 for index in ctx.focus_indices() if pattern.search(ctx.lines[index])]
        if len(hits) < minimum:
            return []
        return [
            ctx.signal(
                id=id,
                title=title,
                category=category,
                reason=reason.format(count=len(hits)),
                weight=weight if weight is not None else per_match * len(hits),
                lines=hits[:max_lines] if max_lines else hits,
                evidence=Evidence(kind=evidence_kind, pattern=pattern.pattern, details={'count': len(hits)}),
                **kwargs,
            )
        ]

    return probe
