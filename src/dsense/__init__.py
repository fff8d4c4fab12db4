"""dsense - diff-aware signal detection for JavaScript and TypeScript sources"""

from .__version__ import __version__
from .classify import (
    class_from_id,
    classify_signals,
    create_signal,
    risk_score,
    severity_from,
    summarize_signals,
    validate_signal,
)
from .detect import detect_signals, select_detector
from .errors import DsenseError, InvalidRangeError, UnknownProfileError
from .focus import FocusWindow
from .models import (
    ActionRecommendation,
    ChangedRange,
    DetectorOptions,
    Evidence,
    FileSignals,
    RiskScore,
    ScanResult,
    Signal,
    SignalSummary,
)
from .patterns import DEFAULT_PATTERNS, PatternDef, PatternRegistry, PatternRegistryDetector, default_registry


__all__ = [
    '__version__',
    # Detection
    'detect_signals',
    'select_detector',
    'PatternRegistryDetector',
    'PatternRegistry',
    'PatternDef',
    'DEFAULT_PATTERNS',
    'default_registry',
    # Classification
    'class_from_id',
    'severity_from',
    'create_signal',
    'validate_signal',
    'summarize_signals',
    'classify_signals',
    'risk_score',
    'FocusWindow',
    # Models
    'ActionRecommendation',
    'ChangedRange',
    'DetectorOptions',
    'Evidence',
    'FileSignals',
    'RiskScore',
    'ScanResult',
    'Signal',
    'SignalSummary',
    # Errors
    'DsenseError',
    'InvalidRangeError',
    'UnknownProfileError',
]
