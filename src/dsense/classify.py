"""Signal classification, severity derivation, validation and rollups."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from dsense.focus import FocusWindow
from dsense.models import (
    ActionRecommendation,
    Confidence,
    Evidence,
    RiskScore,
    Severity,
    Signal,
    SignalCategory,
    SignalClass,
    SignalSummary,
)

logger = logging.getLogger(__name__)

# Ordered: the first list wins when an id matches both
CRITICAL_KEYWORDS = (
    'auth',
    'payment',
    'security',
    'permission',
    'token',
    'session',
    'password',
    'secret',
    'api-key',
    'encryption',
    'credential',
)
BEHAVIORAL_KEYWORDS = (
    'conditional',
    'error',
    'async',
    'promise',
    'callback',
    'event',
    'network',
    'storage',
    'database',
    'timer',
    'process',
    'dom',
    'global',
    'effect',
    'watch',
    'subscribe',
    'http',
    'query',
)

REQUIRED_FIELDS = ('id', 'title', 'reason', 'filePath')

# Per-class weight multiplier and contribution cap used by risk_score()
CLASS_MULTIPLIERS: dict[str, float] = {'critical': 1.5, 'behavioral': 1.0, 'maintainability': 0.5}
CLASS_CAPS: dict[str, float] = {'critical': 5.0, 'behavioral': 3.0, 'maintainability': 1.0}
MAX_RISK_SCORE = 10.0


def class_from_id(signal_id: str) -> SignalClass:
    """Map a signal id to its class by keyword containment.

    Args:
        signal_id: Signal identifier, e.g. 'auth-async-leak'.

    Returns:
        'critical' if any critical keyword occurs in the id, else 'behavioral'
        if any behavioral keyword occurs, else 'maintainability'.
    """
    lowered = signal_id.lower()
    if any(keyword in lowered for keyword in CRITICAL_KEYWORDS):
        return 'critical'
    if any(keyword in lowered for keyword in BEHAVIORAL_KEYWORDS):
        return 'behavioral'
    return 'maintainability'


def severity_from(signal_class: str, weight: float) -> Severity:
    """Derive severity from class and weight."""
    if signal_class == 'critical':
        if weight >= 0.6:
            return 'blocker'
        if weight >= 0.3:
            return 'warn'
        return 'info'
    if signal_class == 'behavioral':
        if weight >= 0.7:
            return 'blocker'
        if weight >= 0.4:
            return 'warn'
        return 'info'
    return 'info'


def create_signal(
    *,
    id: str,
    title: str,
    category: SignalCategory,
    reason: str,
    weight: float,
    file_path: str,
    focus: FocusWindow | None = None,
    lines: list[int] | None = None,
    snippet: str | None = None,
    confidence: Confidence | None = None,
    signal_class: SignalClass | None = None,
    tags: list[str] | None = None,
    evidence: Evidence | None = None,
    actions: list[ActionRecommendation] | None = None,
    meta: dict[str, Any] | None = None,
) -> Signal:
    """Build a Signal, deriving class, severity and changed-range membership.

    Class falls back to class_from_id(id). Severity is always derived from
    (class, weight). in_changed_range is True when any of ``lines`` is a
    changed line in ``focus``.
    """
    resolved_class = signal_class or class_from_id(id)
    lines = list(lines or [])
    in_changed_range = focus.any_changed(lines) if focus is not None else False
    return Signal(
        id=id,
        title=title,
        signal_class=resolved_class,
        category=category,
        severity=severity_from(resolved_class, weight),
        confidence=confidence or 'medium',
        weight=weight,
        file_path=file_path,
        lines=lines,
        snippet=snippet,
        reason=reason,
        evidence=evidence or Evidence(kind='regex'),
        actions=actions,
        tags=tags,
        in_changed_range=in_changed_range,
        meta=meta,
    )


@dataclass
class ValidationResult:
    """Outcome of validate_signal()."""

    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_signal(signal: Signal | Mapping[str, Any]) -> ValidationResult:
    """Check a signal for structural problems without raising.

    Accepts either a Signal or a plain mapping in wire form (camelCase keys).

    Returns:
        ValidationResult with one error string per problem found.
    """
    if isinstance(signal, Signal):
        data = signal.model_dump(by_alias=True)
    elif isinstance(signal, Mapping):
        data = dict(signal)
    else:
        return ValidationResult(valid=False, errors=[f'Expected a signal, got {type(signal).__name__}'])

    errors = []
    for name in REQUIRED_FIELDS:
        if not data.get(name):
            errors.append(f'Missing required field: {name}')

    if data.get('severity') == 'blocker' and not data.get('actions'):
        errors.append('Blocker signals must have at least one action')

    return ValidationResult(valid=not errors, errors=errors)


def summarize_signals(signals: Iterable[Signal]) -> SignalSummary:
    """Count signals by category, by id and by changed-line membership."""
    summary = SignalSummary()
    for signal in signals:
        summary.total += 1
        summary.by_category[signal.category] = summary.by_category.get(signal.category, 0) + 1
        summary.by_type[signal.id] = summary.by_type.get(signal.id, 0) + 1
        if signal.in_changed_range:
            summary.changed_line_signals += 1
    return summary


def classify_signals(signals: Iterable[Signal]) -> dict[str, list[Signal]]:
    """Group signals by class with class-adjusted weights.

    Returned signals are copies; the original weight is kept in
    ``meta['originalWeight']``.
    """
    classified: dict[str, list[Signal]] = {'critical': [], 'behavioral': [], 'maintainability': []}
    for signal in signals:
        multiplier = CLASS_MULTIPLIERS[signal.signal_class]
        meta = dict(signal.meta or {})
        meta['signalClass'] = signal.signal_class
        meta['originalWeight'] = signal.weight
        adjusted = signal.model_copy(update={'weight': signal.weight * multiplier, 'meta': meta})
        classified[signal.signal_class].append(adjusted)
    return classified


def risk_level(score: float) -> str:
    """Map a 0-10 risk score to LOW, MED, HIGH or CRITICAL."""
    if score >= 8.0:
        return 'CRITICAL'
    if score >= 6.0:
        return 'HIGH'
    if score >= 3.0:
        return 'MED'
    return 'LOW'


def risk_score(signals: Iterable[Signal]) -> RiskScore:
    """Compute a capped, class-weighted risk score with a reason chain."""
    classified = classify_signals(signals)
    score = RiskScore()

    for signal_class, members in classified.items():
        contribution = min(sum(s.weight for s in members), CLASS_CAPS[signal_class])
        setattr(score, signal_class, contribution)

    score.total = min(score.critical + score.behavioral + score.maintainability, MAX_RISK_SCORE)

    if classified['critical']:
        score.max_severity = 'blocker'
    elif classified['behavioral']:
        score.max_severity = 'warn'

    total_signals = sum(len(members) for members in classified.values())
    classes_present = sum(1 for members in classified.values() if members)
    score.confidence = min(total_signals * 0.1 + classes_present * 0.2, 1.0)
    score.level = risk_level(score.total)
    score.reasons = _reason_chain(classified, score)

    logger.debug(f'Risk score {score.total:.2f} ({score.level}) from {total_signals} signals')
    return score


def _reason_chain(classified: dict[str, list[Signal]], score: RiskScore) -> list[str]:
    reasons = []
    for signal_class, label, limit in (
        ('critical', 'Critical', 3),
        ('behavioral', 'Behavioral', 3),
        ('maintainability', 'Style', 2),
    ):
        contribution = getattr(score, signal_class)
        if contribution > 0:
            ids = list(dict.fromkeys(s.id for s in classified[signal_class]))
            reasons.append(f"{label}: {', '.join(ids[:limit])} (+{contribution:.1f})")
    return reasons
