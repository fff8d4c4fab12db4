"""Data-driven detection from an injected pattern registry.

The registry is an explicitly constructed value. ``default_registry()``
builds one from ``DEFAULT_PATTERNS`` and is meant for callers at the edge
(the CLI, scripts); nothing in the core reaches for it implicitly.
"""

import dataclasses
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from dsense.classify import create_signal
from dsense.focus import FocusWindow
from dsense.models import Confidence, DetectorOptions, Evidence, Signal, SignalCategory, SignalClass

logger = logging.getLogger(__name__)

GENERIC_FRAMEWORK = 'generic'


@dataclass(frozen=True)
class PatternDef:
    """One registry entry: a single-line regex plus the signal it produces."""

    id: str
    name: str
    description: str
    match: re.Pattern
    category: SignalCategory
    weight: float
    signal_class: SignalClass | None = None
    confidence: Confidence | None = None
    framework: str | None = None  # None means generic
    tags: tuple[str, ...] | None = None
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'match': self.match.pattern,
            'category': self.category,
            'weight': self.weight,
            'class': self.signal_class,
            'confidence': self.confidence,
            'framework': self.framework or GENERIC_FRAMEWORK,
            'tags': list(self.tags) if self.tags else [],
            'enabled': self.enabled,
        }


DEFAULT_PATTERNS: tuple[PatternDef, ...] = (
    # Core impact
    PatternDef(
        id='auth-boundary',
        name='Authentication Boundary',
        description='Authentication/authorization logic - verify security implications',
        match=re.compile(
            r'\b(authenticate|authorize|login|logout|signIn|signOut|verifyToken|validateToken|checkAuth|requireAuth)\b',
            re.IGNORECASE,
        ),
        category='core-impact',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('security', 'auth'),
    ),
    PatternDef(
        id='payment-logic',
        name='Payment Logic',
        description='Payment processing code - requires careful review',
        match=re.compile(r'\b(payment|charge|refund|subscription|billing|stripe|paypal)\b', re.IGNORECASE),
        category='core-impact',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('payments', 'financial'),
    ),
    PatternDef(
        id='security-sensitive',
        name='Security Sensitive',
        description='Security-sensitive operations - verify encryption/hashing',
        match=re.compile(r'\b(encrypt|decrypt|hash|salt|secret|apiKey|API_KEY|privateKey|createHash|createCipher)\b'),
        category='core-impact',
        weight=0.8,
        signal_class='critical',
        confidence='high',
        tags=('security', 'crypto'),
    ),
    PatternDef(
        id='permission-check',
        name='Permission Check',
        description='Permission/role checking - verify authorization logic',
        match=re.compile(r'\b(hasPermission|checkRole|isAdmin|canAccess|authorize)\b'),
        category='core-impact',
        weight=0.8,
        signal_class='critical',
        confidence='high',
        tags=('security', 'permissions'),
    ),
    PatternDef(
        id='session-management',
        name='Session Management',
        description='Session handling - verify security and expiration',
        match=re.compile(
            r'\b(session|cookie|jwt|token|bearer)\b.*\b(create|destroy|expire|refresh|validate)\b',
            re.IGNORECASE,
        ),
        category='core-impact',
        weight=0.7,
        signal_class='critical',
        confidence='medium',
        tags=('security', 'session'),
    ),
    # Behavioral
    PatternDef(
        id='conditional-logic',
        name='Complex Conditional',
        description='Complex conditional statement - verify all branches are tested',
        match=re.compile(r'if\s*\([^)]{50,}\)'),
        category='complexity',
        weight=0.4,
        signal_class='behavioral',
        confidence='medium',
        tags=('logic',),
    ),
    PatternDef(
        id='error-handling',
        name='Error Handling',
        description='Error handling pattern - verify proper error propagation',
        match=re.compile(r'\b(catch\s*\(|throw\s+new|Error\(|reject\()'),
        category='async',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('errors',),
    ),
    PatternDef(
        id='async-await',
        name='Async Function',
        description='Async function - verify error handling and race conditions',
        match=re.compile(r'\basync\s+(function|[(\w])'),
        category='async',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('async',),
    ),
    PatternDef(
        id='promise-chain',
        name='Promise Chain',
        description='Promise chaining - consider async/await for readability',
        match=re.compile(r'\.then\s*\([^)]*\)\s*\.then'),
        category='async',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('async', 'promises'),
    ),
    PatternDef(
        id='network-fetch',
        name='Network Fetch',
        description='Network fetch call - verify error handling and loading states',
        match=re.compile(r'\bfetch\s*\('),
        category='side-effect',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('network', 'io'),
    ),
    PatternDef(
        id='network-axios',
        name='Axios Call',
        description='Axios HTTP call - verify error handling and timeouts',
        match=re.compile(r'\baxios\s*[.(]'),
        category='side-effect',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('network', 'io'),
    ),
    PatternDef(
        id='database-query',
        name='Database Query',
        description='Database operation - verify SQL injection prevention',
        match=re.compile(r'\.(query|execute|findOne|findMany|create|update|delete)\s*\('),
        category='side-effect',
        weight=0.5,
        signal_class='behavioral',
        confidence='medium',
        tags=('database', 'io'),
    ),
    PatternDef(
        id='sql-statement',
        name='SQL Statement',
        description='Raw SQL statement - verify parameterized queries',
        match=re.compile(r'(SELECT|INSERT|UPDATE|DELETE)\s+', re.IGNORECASE),
        category='side-effect',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('database', 'sql', 'security'),
    ),
    PatternDef(
        id='state-mutation',
        name='State Mutation',
        description='State mutation - verify immutability patterns',
        match=re.compile(r'(this\.state\s*=|setState\s*\()'),
        category='side-effect',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('state',),
    ),
    PatternDef(
        id='global-mutation',
        name='Global Mutation',
        description='Global variable mutation - verify scope and side effects',
        match=re.compile(r'(window\.|global\.|globalThis\.)\w+\s*='),
        category='side-effect',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('global', 'mutation'),
    ),
    PatternDef(
        id='timer-interval',
        name='Timer/Interval',
        description='Timer or interval - verify cleanup to prevent memory leaks',
        match=re.compile(r'\b(setTimeout|setInterval)\s*\('),
        category='side-effect',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('timer', 'memory'),
    ),
    # Maintainability
    PatternDef(
        id='deep-nesting',
        name='Deep Nesting',
        description='Deeply nested code - consider extracting functions',
        match=re.compile(r'^\s{10,}\S'),
        category='complexity',
        weight=0.3,
        signal_class='maintainability',
        confidence='high',
        tags=('style', 'complexity'),
    ),
    PatternDef(
        id='console-log',
        name='Console Log',
        description='Console output - remove before production',
        match=re.compile(r'console\.(log|warn|error|info|debug)\s*\('),
        category='side-effect',
        weight=0.1,
        signal_class='maintainability',
        confidence='high',
        tags=('logging',),
    ),
    PatternDef(
        id='todo-comment',
        name='TODO Comment',
        description='TODO/FIXME comment - address before merge',
        match=re.compile(r'//\s*(TODO|FIXME|HACK|XXX):', re.IGNORECASE),
        category='complexity',
        weight=0.1,
        signal_class='maintainability',
        confidence='high',
        tags=('comments',),
    ),
    PatternDef(
        id='magic-number',
        name='Magic Number',
        description='Magic number - consider using named constant',
        match=re.compile(r'(?<!\w)\d{4,}(?!\w)'),
        category='complexity',
        weight=0.2,
        signal_class='maintainability',
        confidence='medium',
        tags=('style',),
    ),
    PatternDef(
        id='any-type',
        name='Any Type',
        description='TypeScript any type - consider proper typing',
        match=re.compile(r':\s*any\b'),
        category='complexity',
        weight=0.2,
        signal_class='maintainability',
        confidence='high',
        tags=('typescript', 'types'),
    ),
    # React
    PatternDef(
        id='react-effect-no-deps',
        name='useEffect Without Deps',
        description='useEffect without dependency array - runs on every render',
        match=re.compile(r'useEffect\s*\(\s*(?:async\s*)?\([^)]*\)\s*=>\s*\{'),
        category='async',
        weight=0.8,
        signal_class='behavioral',
        confidence='medium',
        tags=('react', 'hooks'),
        framework='react',
    ),
    PatternDef(
        id='react-inline-handler',
        name='Inline Handler',
        description='Inline function in JSX - causes re-renders',
        match=re.compile(r'on\w+=\{\s*\([^)]*\)\s*=>'),
        category='side-effect',
        weight=0.3,
        signal_class='maintainability',
        confidence='high',
        tags=('react', 'performance'),
        framework='react',
    ),
    PatternDef(
        id='react-dangerous-html',
        name='dangerouslySetInnerHTML',
        description='dangerouslySetInnerHTML - XSS vulnerability risk',
        match=re.compile(r'dangerouslySetInnerHTML'),
        category='side-effect',
        weight=0.7,
        signal_class='critical',
        confidence='high',
        tags=('react', 'security'),
        framework='react',
    ),
    PatternDef(
        id='react-direct-dom',
        name='Direct DOM in React',
        description='Direct DOM manipulation in React - use refs instead',
        match=re.compile(r'document\.(getElementById|querySelector|createElement)'),
        category='side-effect',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'dom'),
        framework='react',
    ),
    # Vue
    PatternDef(
        id='vue-props-mutation',
        name='Vue Props Mutation',
        description='Direct props mutation - emit event instead',
        match=re.compile(r'(this\.\$props\.\w+|props\.\w+)\s*='),
        category='side-effect',
        weight=0.8,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'props'),
        framework='vue',
    ),
    PatternDef(
        id='vue-force-update',
        name='Vue Force Update',
        description='$forceUpdate is an anti-pattern - use reactive data',
        match=re.compile(r'\$forceUpdate\s*\('),
        category='side-effect',
        weight=0.7,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'reactivity'),
        framework='vue',
    ),
    # Angular
    PatternDef(
        id='angular-subscribe-no-unsubscribe',
        name='Angular Subscribe Leak',
        description='Subscribe without unsubscribe - memory leak risk',
        match=re.compile(r'\.subscribe\s*\('),
        category='async',
        weight=0.6,
        signal_class='behavioral',
        confidence='medium',
        tags=('angular', 'rxjs', 'memory'),
        framework='angular',
    ),
    PatternDef(
        id='angular-nested-subscribe',
        name='Angular Nested Subscribe',
        description='Nested subscribe - use switchMap/mergeMap instead',
        match=re.compile(r'\.subscribe\s*\([^)]*\.subscribe'),
        category='async',
        weight=0.7,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'rxjs'),
        framework='angular',
    ),
    # Node
    PatternDef(
        id='node-sync-op',
        name='Sync Operation',
        description='Synchronous blocking operation - consider async alternative',
        match=re.compile(r'(readFileSync|writeFileSync|execSync|spawnSync|existsSync)'),
        category='side-effect',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('node', 'blocking'),
        framework='node',
    ),
    PatternDef(
        id='node-process-exit',
        name='Process Exit',
        description='process.exit call - verify this is intentional',
        match=re.compile(r'process\.exit\s*\('),
        category='side-effect',
        weight=0.7,
        signal_class='behavioral',
        confidence='high',
        tags=('node', 'process'),
        framework='node',
    ),
    PatternDef(
        id='node-child-process',
        name='Child Process',
        description='Child process spawn - verify security and cleanup',
        match=re.compile(r'\b(spawn|exec|fork|execFile)\s*\('),
        category='side-effect',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('node', 'process'),
        framework='node',
    ),
    PatternDef(
        id='node-eval',
        name='Eval Usage',
        description='eval or Function constructor - security risk',
        match=re.compile(r'\b(eval\s*\(|new\s+Function\s*\()'),
        category='side-effect',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('node', 'security'),
        framework='node',
    ),
)


class PatternRegistry:
    """Ordered, id-keyed collection of PatternDef entries.

    Registering an id that already exists replaces the entry in place,
    keeping its original position.
    """

    def __init__(self, patterns: Iterable[PatternDef] = ()):
        self._patterns: dict[str, PatternDef] = {}
        for pattern in patterns:
            self.register(pattern)

    def register(self, pattern: PatternDef) -> None:
        self._patterns[pattern.id] = pattern

    def get(self, pattern_id: str) -> PatternDef | None:
        return self._patterns.get(pattern_id)

    def all(self) -> list[PatternDef]:
        """Enabled entries in registration order."""
        return [p for p in self._patterns.values() if p.enabled]

    def by_category(self, category: str) -> list[PatternDef]:
        return [p for p in self.all() if p.category == category]

    def by_framework(self, framework: str) -> list[PatternDef]:
        """Enabled generic entries followed by the framework's own."""
        enabled = self.all()
        generic = [p for p in enabled if (p.framework or GENERIC_FRAMEWORK) == GENERIC_FRAMEWORK]
        if framework == GENERIC_FRAMEWORK:
            return generic
        return generic + [p for p in enabled if p.framework == framework]

    def frameworks(self) -> list[str]:
        return list(dict.fromkeys(p.framework or GENERIC_FRAMEWORK for p in self._patterns.values()))

    def set_enabled(self, pattern_id: str, enabled: bool) -> None:
        """Toggle an entry; unknown ids are ignored."""
        pattern = self._patterns.get(pattern_id)
        if pattern is not None:
            self._patterns[pattern_id] = dataclasses.replace(pattern, enabled=enabled)

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._patterns


def default_registry() -> PatternRegistry:
    """A fresh registry holding DEFAULT_PATTERNS."""
    return PatternRegistry(DEFAULT_PATTERNS)


class PatternRegistryDetector:
    """Scan focus lines against every enabled registry entry."""

    def __init__(self, registry: PatternRegistry):
        self.registry = registry

    def detect(
        self,
        content: str,
        path: str,
        options: DetectorOptions | None = None,
        framework: str | None = None,
    ) -> list[Signal]:
        """Detect signals for one file.

        Args:
            content: File content.
            path: File path, copied onto each signal.
            options: Changed ranges and context width.
            framework: Restrict to generic entries plus this framework's.

        Returns:
            One signal per (pattern id, line), first occurrence wins.
        """
        options = options or DetectorOptions()
        lines = content.split('\n')
        focus = FocusWindow.compute(len(lines), options.changed_ranges, options.context_lines)
        patterns = self.registry.by_framework(framework) if framework else self.registry.all()

        signals = []
        for line_number in focus.focus_lines():
            if not 1 <= line_number <= len(lines):
                continue
            line = lines[line_number - 1]
            for pattern in patterns:
                found = pattern.match.search(line)
                if found is not None:
                    signals.append(self._signal(pattern, path, focus, line_number, line, found.group(0)))

        result = deduplicate(signals)
        logger.debug(f'Pattern scan of {path}: {len(result)} signals from {len(patterns)} patterns')
        return result

    @staticmethod
    def _signal(
        pattern: PatternDef, path: str, focus: FocusWindow, line_number: int, line: str, match_text: str
    ) -> Signal:
        return create_signal(
            id=pattern.id,
            title=pattern.name,
            category=pattern.category,
            reason=pattern.description,
            weight=pattern.weight,
            file_path=path,
            focus=focus,
            lines=[line_number],
            snippet=line,
            confidence=pattern.confidence,
            signal_class=pattern.signal_class,
            tags=list(pattern.tags) if pattern.tags else [pattern.framework or GENERIC_FRAMEWORK],
            evidence=Evidence(kind='regex', pattern=pattern.match.pattern, details={'matchText': match_text}),
            meta={'patternId': pattern.id, 'framework': pattern.framework},
        )


def deduplicate(signals: Iterable[Signal]) -> list[Signal]:
    """Keep the first signal per (id, first line) in scan order."""
    seen: set[tuple[str, int]] = set()
    result = []
    for signal in signals:
        key = (signal.id, signal.lines[0] if signal.lines else 0)
        if key not in seen:
            seen.add(key)
            result.append(signal)
    return result


def detect_with_patterns(
    content: str,
    path: str,
    options: DetectorOptions | None = None,
    framework: str | None = None,
    registry: PatternRegistry | None = None,
) -> list[Signal]:
    """Run a PatternRegistryDetector, building the default registry if none is given."""
    if registry is None:
        registry = default_registry()
    return PatternRegistryDetector(registry).detect(content, path, options, framework)
