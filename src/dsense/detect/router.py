"""Detector selection: explicit profiles and the auto-detection cascade."""

import logging

from dsense.detect.frameworks import (
    ANGULAR,
    DESKTOP,
    NODE,
    REACT,
    REACT_NATIVE,
    SSR,
    SVELTE,
    VUE,
    is_angular_file,
    is_desktop_file,
    is_node_file,
    is_react_file,
    is_react_native_file,
    is_ssr_file,
    is_svelte_file,
    is_vue_file,
)
from dsense.detect.generic import GENERIC
from dsense.detect.layer import Applies, Detector
from dsense.errors import UnknownProfileError
from dsense.models import DetectorOptions, Signal

logger = logging.getLogger(__name__)

AUTO = 'auto'

PROFILES: dict[str, Detector] = {
    'generic': Detector('generic', GENERIC),
    'react': Detector('react', GENERIC, (REACT,)),
    'vue': Detector('vue', GENERIC, (VUE,)),
    'angular': Detector('angular', GENERIC, (ANGULAR,)),
    'svelte': Detector('svelte', GENERIC, (SVELTE,)),
    'node': Detector('node', GENERIC, (NODE,)),
    'ssr': Detector('ssr', GENERIC, (SSR,)),
    'react-native': Detector('react-native', GENERIC, (REACT_NATIVE,)),
    'electron': Detector('electron', GENERIC, (DESKTOP,)),
}

PROFILE_ALIASES = {
    'tauri': 'electron',
    'desktop': 'electron',
}

# Auto-detection order; the first predicate that holds wins
CASCADE: list[tuple[str, Applies]] = [
    ('electron', is_desktop_file),
    ('react-native', is_react_native_file),
    ('ssr', is_ssr_file),
    ('svelte', is_svelte_file),
    ('vue', is_vue_file),
    ('angular', is_angular_file),
    ('react', is_react_file),
    ('node', is_node_file),
]


def known_profiles() -> list[str]:
    return [AUTO, *PROFILES, *PROFILE_ALIASES]


def auto_profile(content: str, path: str) -> str:
    """Name of the first cascade profile whose predicate holds, else 'generic'."""
    for name, predicate in CASCADE:
        if predicate(path, content):
            return name
    return 'generic'


def resolve_profile(content: str, path: str, profile: str = AUTO) -> str:
    """Canonical profile name for a file.

    Raises:
        UnknownProfileError: ``profile`` is neither 'auto' nor a known profile or alias.
    """
    if profile == AUTO:
        return auto_profile(content, path)
    name = PROFILE_ALIASES.get(profile, profile)
    if name not in PROFILES:
        raise UnknownProfileError(profile, known_profiles())
    return name


def select_detector(content: str, path: str, profile: str = AUTO) -> Detector:
    """Pick the detector for a file; an explicit profile always overrides auto-detection."""
    name = resolve_profile(content, path, profile)
    if profile == AUTO:
        logger.debug(f'Auto-selected {name} detector for {path}')
    return PROFILES[name]


def detect_signals(
    content: str,
    path: str,
    profile: str = AUTO,
    options: DetectorOptions | None = None,
) -> list[Signal]:
    """Detect signals in one file with the selected detector.

    Args:
        content: File content.
        path: File path, used only for string and extension matching.
        profile: Detector profile name, or 'auto'.
        options: Changed ranges and context width; None analyses the whole file.

    Returns:
        Signals in detection order.
    """
    return select_detector(content, path, profile).detect(content, path, options)
