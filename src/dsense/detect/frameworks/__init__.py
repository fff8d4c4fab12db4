"""Framework layers.

Each layer bundles a rule table and probes behind a file-level
applicability predicate.
"""

from .angular import ANGULAR, is_angular_file
from .desktop import DESKTOP, desktop_variant, is_desktop_file
from .node import NODE, is_node_file
from .react import REACT, is_react_file
from .react_native import REACT_NATIVE, is_react_native_file, mobile_variant
from .ssr import SSR, is_ssr_file, ssr_variant
from .svelte import SVELTE, is_svelte_file
from .vue import VUE, is_vue_file


__all__ = [
    # Layers
    'ANGULAR',
    'DESKTOP',
    'NODE',
    'REACT',
    'REACT_NATIVE',
    'SSR',
    'SVELTE',
    'VUE',
    # Applicability predicates
    'is_angular_file',
    'is_desktop_file',
    'is_node_file',
    'is_react_file',
    'is_react_native_file',
    'is_ssr_file',
    'is_svelte_file',
    'is_vue_file',
    # Variant classifiers
    'desktop_variant',
    'mobile_variant',
    'ssr_variant',
]
