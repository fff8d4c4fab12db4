"""Detectors: the generic battery, framework layers and profile routing."""

from .generic import GENERIC
from .layer import Detector, FrameworkLayer, Variant, dispatch_variant
from .router import (
    AUTO,
    CASCADE,
    PROFILE_ALIASES,
    PROFILES,
    detect_signals,
    known_profiles,
    resolve_profile,
    select_detector,
)
from .rules import FileContext, Rule, count_rule, first_match_rule, scan_rules


__all__ = [
    # Composition
    'Detector',
    'FrameworkLayer',
    'Variant',
    'dispatch_variant',
    'GENERIC',
    # Rule tables
    'FileContext',
    'Rule',
    'count_rule',
    'first_match_rule',
    'scan_rules',
    # Routing
    'AUTO',
    'CASCADE',
    'PROFILES',
    'PROFILE_ALIASES',
    'detect_signals',
    'known_profiles',
    'resolve_profile',
    'select_detector',
]
