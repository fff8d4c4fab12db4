"""React layer: hooks, component, state and render-performance checks."""

import re

from dsense.detect.layer import FrameworkLayer
from dsense.detect.rules import FileContext, Rule, count_rule, text
from dsense.models import ActionRecommendation, Evidence, Signal

REACT_IMPORT = re.compile(r'''import\s+.*\s+from\s+['"]react['"]''')
NEXT_MARKER = re.compile(r'''from\s+['"]next|getServerSideProps|getStaticProps''')

WINDOW_EFFECT_DEPS = 10
WINDOW_STALE_CLOSURE_BEFORE = 5
WINDOW_STALE_CLOSURE_AFTER = 10
WINDOW_ASYNC_SET_STATE = 5
WINDOW_EFFECT_BLOCK_BEFORE = 10
WINDOW_EFFECT_BLOCK_AFTER = 20
WINDOW_INSIDE_EFFECT = 20
WINDOW_INSIDE_HANDLER = 10
WINDOW_RENDER_CONDITIONAL = 3
WINDOW_MEMO_BEFORE = 10

STANDARD_HOOKS = frozenset(
    {
        'useState',
        'useEffect',
        'useCallback',
        'useMemo',
        'useRef',
        'useContext',
        'useReducer',
        'useLayoutEffect',
        'useImperativeHandle',
        'useDebugValue',
        'useDeferredValue',
        'useTransition',
        'useId',
        'useSyncExternalStore',
        'useInsertionEffect',
    }
)


def is_react_file(path: str, content: str) -> bool:
    """True for .jsx/.tsx files or files importing react."""
    if path.endswith(('.jsx', '.tsx')):
        return True
    return REACT_IMPORT.search(content) is not None


def _uses_next(ctx: FileContext) -> bool:
    return NEXT_MARKER.search(ctx.content) is not None


ADD_EFFECT_DEPS = ActionRecommendation(
    type='mitigation_steps',
    text='Add dependency array to useEffect',
    steps=[
        'Add [] if effect should only run once',
        'Add [dep1, dep2] if effect depends on specific values',
        'Use eslint-plugin-react-hooks for automatic detection',
    ],
)
FIX_DERIVED_STATE = ActionRecommendation(
    type='mitigation_steps',
    text='Fix derived state',
    steps=[
        'Compute value directly from props (no state needed)',
        'Use useMemo for expensive computations',
        'If state needed, sync with useEffect + key prop',
    ],
)
ADD_LISTENER_CLEANUP = ActionRecommendation(
    type='mitigation_steps',
    text='Add cleanup function',
    steps=[
        'Return cleanup function from useEffect',
        'Call removeEventListener with same handler reference',
        'Consider using useCallback for stable handler',
    ],
)

REACT_RULES = (
    Rule(
        id='react-complex-deps',
        pattern=re.compile(r'useEffect\s*\([^)]*,\s*\[[^\]]{50,}\]'),
        category='complexity',
        title='Complex Effect Dependencies',
        reason='useEffect has many dependencies - consider splitting into smaller effects',
        weight=0.4,
        signal_class='maintainability',
        confidence='medium',
        tags=('react', 'hooks', 'complexity'),
    ),
    Rule(
        id='react-callback-no-deps',
        pattern=re.compile(r'useCallback\s*\([^,]+\)'),
        category='async',
        title='useCallback Without Dependencies',
        reason='useCallback without dependency array defeats memoization purpose',
        weight=0.5,
        signal_class='behavioral',
        confidence='medium',
        tags=('react', 'hooks', 'memoization'),
        forbids=re.compile(r'useCallback\s*\([^,]+,\s*\['),
    ),
    Rule(
        id='react-memo-no-deps',
        pattern=re.compile(r'useMemo\s*\([^,]+\)'),
        category='async',
        title='useMemo Without Dependencies',
        reason='useMemo without dependency array defeats memoization purpose',
        weight=0.5,
        signal_class='behavioral',
        confidence='medium',
        tags=('react', 'hooks', 'memoization'),
        forbids=re.compile(r'useMemo\s*\([^,]+,\s*\['),
    ),
    Rule(
        id='react-complex-state',
        pattern=re.compile(r'useState\s*\(\s*\{[^}]{100,}\}'),
        category='complexity',
        title='Complex State Shape',
        reason='useState with complex initial value - consider useReducer or splitting state',
        weight=0.3,
        signal_class='maintainability',
        confidence='medium',
        tags=('react', 'state', 'complexity'),
    ),
    Rule(
        id='react-direct-dom',
        pattern=re.compile(r'document\.(getElementById|querySelector|createElement)'),
        category='side-effect',
        title='Direct DOM Manipulation',
        reason='Direct DOM manipulation in React - use refs or state instead',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'dom', 'anti-pattern'),
    ),
    Rule(
        id='react-dangerous-html',
        pattern=re.compile(r'dangerouslySetInnerHTML'),
        category='side-effect',
        title='Dangerous HTML Injection',
        reason='dangerouslySetInnerHTML can lead to XSS vulnerabilities - sanitize input',
        weight=0.7,
        signal_class='critical',
        confidence='high',
        tags=('react', 'security', 'xss'),
        actions=(
            ActionRecommendation(
                type='review_request',
                text='Verify HTML is sanitized before injection',
                reviewers=['@security-team'],
            ),
        ),
    ),
    Rule(
        id='react-suspense',
        pattern=re.compile(r'Suspense|lazy\('),
        category='async',
        title='Suspense/Lazy Loading',
        reason='Suspense/lazy loading - verify fallback UI and error boundaries',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'suspense', 'lazy'),
    ),
    Rule(
        id='react-context',
        pattern=re.compile(r'useContext\s*\(|createContext\s*\('),
        category='blast-radius',
        title='Context Usage',
        reason='Context change can trigger re-renders in all consumers - verify performance',
        weight=0.4,
        signal_class='behavioral',
        confidence='medium',
        tags=('react', 'context', 'performance'),
    ),
    Rule(
        id='react-forward-ref',
        pattern=re.compile(r'forwardRef\s*\('),
        category='signature',
        title='Forward Ref',
        reason='forwardRef exposes ref to parent - verify ref usage is correct',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'refs'),
    ),
    Rule(
        id='react-portal',
        pattern=re.compile(r'createPortal\s*\('),
        category='side-effect',
        title='Portal Usage',
        reason='Portal renders outside DOM hierarchy - verify event bubbling and styling',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'portal', 'dom'),
    ),
    Rule(
        id='react-index-key',
        pattern=re.compile(r'key=\{.*index.*\}|key=\{i\}|key=\{idx\}'),
        category='side-effect',
        title='Index as Key',
        reason='Using array index as key - causes issues with reordering/deletion',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'keys', 'lists'),
    ),
    Rule(
        id='react-derived-state',
        pattern=re.compile(r'useState\s*\(\s*props\.'),
        category='side-effect',
        title='Derived State from Props',
        reason='State initialized from props - will not update when props change',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'state', 'props', 'anti-pattern'),
        actions=(FIX_DERIVED_STATE,),
    ),
    Rule(
        id='react-state-mutation',
        pattern=re.compile(r'set\w+\s*\(\s*\w+\.push\s*\(|set\w+\s*\(\s*\w+\.splice\s*\(|set\w+\s*\(\s*\w+\[\w+\]\s*='),
        category='side-effect',
        title='Direct State Mutation',
        reason='Mutating state directly - use spread or immer for immutable updates',
        weight=0.8,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'state', 'mutation', 'immutability'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Update state immutably',
                steps=['Copy with spread before changing', 'Or use immer produce()'],
            ),
        ),
    ),
    Rule(
        id='react-context-value-inline',
        pattern=re.compile(r'value=\{\{'),
        category='blast-radius',
        title='Inline Context Value',
        reason='Context value object created inline - causes all consumers to re-render',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'context', 'performance'),
        requires=re.compile(r'Provider'),
    ),
    Rule(
        id='react-boundary',
        pattern=re.compile(r'ErrorBoundary|Suspense'),
        category='core-impact',
        title='Error/Suspense Boundary',
        reason='Error or Suspense boundary changed - verify error handling is intact',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('react', 'error-boundary'),
    ),
    Rule(
        id='react-unstable-prop',
        pattern=re.compile(r'<\w+[^>]*=\{\[|<\w+[^>]*=\{\{[^}]*\}\}'),
        category='side-effect',
        title='Unstable Prop Reference',
        reason='New object/array created inline as prop - causes child re-render',
        weight=0.4,
        signal_class='maintainability',
        confidence='medium',
        tags=('react', 'props', 'performance', 'memoization'),
        forbids=re.compile(r'style='),
    ),
)

NEXT_RULES = (
    Rule(
        id='next-router-change',
        pattern=re.compile(r'useRouter\s*\(\)|router\.push|router\.replace|router\.back'),
        category='side-effect',
        title='Router Navigation',
        reason='Router navigation - verify caching and loading states',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'router', 'navigation'),
        when=_uses_next,
    ),
    Rule(
        id='next-gss-props',
        pattern=re.compile(r'export\s+(?:async\s+)?function\s+getServerSideProps'),
        category='side-effect',
        title='getServerSideProps',
        reason='Server-side data fetching - runs on every request',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'ssr', 'data-fetching'),
        when=_uses_next,
    ),
    Rule(
        id='next-static-props',
        pattern=re.compile(r'export\s+(?:async\s+)?function\s+getStaticProps'),
        category='side-effect',
        title='getStaticProps',
        reason='Static data fetching - runs at build time',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'ssg', 'data-fetching'),
        when=_uses_next,
    ),
)

EFFECT_CALL = re.compile(r'useEffect\s*\(')
DEP_ARRAY = re.compile(r'\[\s*\]|\[\s*\w+')
SET_STATE_CALL = re.compile(r'set[A-Z]\w*\s*\(')


def is_inside_effect(ctx: FileContext, index: int) -> bool:
    """Walk back up to WINDOW_INSIDE_EFFECT lines looking for useEffect( before a closing '})'."""
    for i in range(index, max(0, index - WINDOW_INSIDE_EFFECT) - 1, -1):
        if EFFECT_CALL.search(ctx.lines[i]):
            return True
        if re.match(r'^\s*\}\s*\)', ctx.lines[i]):
            return False
    return False


def is_inside_handler(ctx: FileContext, index: int) -> bool:
    for i in range(index, max(0, index - WINDOW_INSIDE_HANDLER) - 1, -1):
        if re.search(r'on\w+\s*=|handle\w+\s*=|const\s+handle\w+', ctx.lines[i]):
            return True
        if re.match(r'^\s*\}\s*[;,]?$', ctx.lines[i]):
            return False
    return False


def effect_block(ctx: FileContext, index: int) -> str | None:
    """Text of the useEffect block around ``index``, found by brace counting.

    Only lines in [index - 10, index + 20) are considered. Returns None when
    no useEffect opens within that window.
    """
    depth = 0
    in_effect = False
    block: list[str] = []
    for line in ctx.around(index, WINDOW_EFFECT_BLOCK_BEFORE, WINDOW_EFFECT_BLOCK_AFTER):
        if EFFECT_CALL.search(line):
            in_effect = True
        if in_effect:
            block.append(line)
            depth += line.count('{') - line.count('}')
            if depth <= 0 and len(block) > 1:
                break
    return text(block) if in_effect else None


def effect_without_deps(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        if not EFFECT_CALL.search(ctx.lines[index]):
            continue
        if DEP_ARRAY.search(text(ctx.ahead(index, WINDOW_EFFECT_DEPS))):
            continue
        signals.append(
            ctx.line_signal(
                index,
                id='react-effect-no-deps',
                title='useEffect Without Dependencies',
                category='async',
                reason='useEffect without dependency array runs on every render - add dependencies or empty array',
                weight=0.8,
                snippet=ctx.snippet(index + 1, index + 3),
                signal_class='behavioral',
                confidence='high',
                tags=['react', 'hooks', 'performance'],
                evidence=Evidence(kind='regex', pattern=EFFECT_CALL.pattern),
                actions=[ADD_EFFECT_DEPS],
            )
        )
    return signals


def custom_hooks(ctx: FileContext) -> list[Signal]:
    found: dict[str, int] = {}
    for index in ctx.focus_indices():
        for hook in re.findall(r'\buse[A-Z]\w+', ctx.lines[index]):
            if hook not in STANDARD_HOOKS and hook not in found:
                found[hook] = index + 1
    if not found:
        return []
    names = list(found)
    return [
        ctx.signal(
            id='react-custom-hooks',
            title='Custom Hooks Used',
            category='signature',
            reason=f"{len(names)} custom hook(s) used: {', '.join(names[:3])}",
            weight=0.2,
            lines=list(found.values()),
            signal_class='behavioral',
            confidence='high',
            tags=['react', 'hooks', 'custom'],
            evidence=Evidence(kind='regex', details={'hooks': names}),
        )
    ]


inline_styles = count_rule(
    id='react-inline-styles',
    pattern=re.compile(r'style=\{\{'),
    category='side-effect',
    title='Many Inline Styles',
    reason='{count} inline style objects create new objects on every render',
    weight=0.3,
    minimum=4,
    max_lines=5,
    signal_class='maintainability',
    confidence='high',
    tags=['react', 'styles', 'performance'],
)

inline_handlers = count_rule(
    id='react-inline-handlers',
    pattern=re.compile(r'on\w+=\{\s*\([^)]*\)\s*=>'),
    category='side-effect',
    title='Many Inline Handlers',
    reason='{count} inline handlers create new functions on every render',
    weight=0.3,
    minimum=4,
    max_lines=5,
    signal_class='maintainability',
    confidence='high',
    tags=['react', 'handlers', 'performance'],
)


def state_hazards(ctx: FileContext) -> list[Signal]:
    """Stale closures, setState after unmount and setState during render."""
    signals = []
    has_unmount_guard = re.search(r'isMounted|abortController|controller\.abort|cancelled', ctx.content)
    for index in ctx.focus_indices():
        line = ctx.lines[index]

        if re.search(r'setTimeout|setInterval', line):
            nearby = text(ctx.around(index, WINDOW_STALE_CLOSURE_BEFORE, WINDOW_STALE_CLOSURE_AFTER))
            if re.search(r'useState|useRef', nearby) and not re.search(r'useRef|\.current', line):
                signals.append(
                    ctx.line_signal(
                        index,
                        id='react-stale-closure',
                        title='Stale Closure Risk',
                        category='async',
                        reason='Timer using state without ref - may capture stale values',
                        weight=0.6,
                        signal_class='behavioral',
                        confidence='medium',
                        tags=['react', 'closure', 'timer'],
                        evidence=Evidence(kind='regex', pattern='setTimeout|setInterval with state'),
                    )
                )

        if re.search(r'\.then\s*\(|await\s+', line) and not has_unmount_guard:
            if SET_STATE_CALL.search(text(ctx.ahead(index, WINDOW_ASYNC_SET_STATE))):
                signals.append(
                    ctx.line_signal(
                        index,
                        id='react-set-state-unmounted',
                        title='setState After Unmount Risk',
                        category='async',
                        reason='Async setState without unmount check - may cause memory leak warning',
                        weight=0.5,
                        signal_class='behavioral',
                        confidence='medium',
                        tags=['react', 'state', 'async', 'memory-leak'],
                        evidence=Evidence(kind='heuristic', pattern='async setState without cleanup'),
                    )
                )

        if SET_STATE_CALL.search(line) and not is_inside_effect(ctx, index) and not is_inside_handler(ctx, index):
            preceding = text(ctx.behind(index, WINDOW_RENDER_CONDITIONAL), '')
            if not re.search(r'if\s*\(|&&|[?:]', preceding):
                signals.append(
                    ctx.line_signal(
                        index,
                        id='react-set-state-render',
                        title='setState in Render',
                        category='side-effect',
                        reason='setState called during render - causes infinite loop',
                        weight=0.9,
                        signal_class='critical',
                        confidence='medium',
                        tags=['react', 'state', 'render', 'infinite-loop'],
                        evidence=Evidence(kind='heuristic', pattern='setState outside effect/handler'),
                        actions=[
                            ActionRecommendation(
                                type='mitigation_steps',
                                text='Move setState out of render',
                                steps=['Call it from an event handler', 'Or wrap it in useEffect'],
                            )
                        ],
                    )
                )
    return signals


def render_performance(ctx: FileContext) -> list[Signal]:
    """Effect cleanup and unmemoized render-time computations."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]

        if re.search(r'addEventListener\s*\(', line):
            block = effect_block(ctx, index)
            if block is not None and 'removeEventListener' not in block:
                signals.append(
                    ctx.line_signal(
                        index,
                        id='react-listener-no-cleanup',
                        title='Event Listener Without Cleanup',
                        category='async',
                        reason='addEventListener without removeEventListener in cleanup',
                        weight=0.7,
                        signal_class='behavioral',
                        confidence='high',
                        tags=['react', 'events', 'memory-leak', 'cleanup'],
                        evidence=Evidence(kind='regex', pattern='addEventListener without remove'),
                        actions=[ADD_LISTENER_CLEANUP],
                    )
                )

        if re.search(r'setInterval\s*\(|setTimeout\s*\(', line):
            block = effect_block(ctx, index)
            if block is not None and not re.search(r'clearInterval|clearTimeout', block):
                signals.append(
                    ctx.line_signal(
                        index,
                        id='react-timer-no-cleanup',
                        title='Timer Without Cleanup',
                        category='async',
                        reason='setInterval/setTimeout without clear in cleanup',
                        weight=0.6,
                        signal_class='behavioral',
                        confidence='high',
                        tags=['react', 'timer', 'memory-leak', 'cleanup'],
                        evidence=Evidence(kind='regex', pattern='setInterval|setTimeout without clear'),
                    )
                )

        if re.search(r'\.map\s*\(|\.filter\s*\(|\.reduce\s*\(', line):
            in_render = not is_inside_effect(ctx, index) and not is_inside_handler(ctx, index)
            memoized = re.search(r'useMemo|useCallback', text(ctx.behind(index, WINDOW_MEMO_BEFORE)))
            if in_render and not memoized:
                signals.append(
                    ctx.line_signal(
                        index,
                        id='react-unmemoized-computation',
                        title='Unmemoized Computation in Render',
                        category='complexity',
                        reason='Array operation in render without useMemo - recalculates every render',
                        weight=0.3,
                        signal_class='maintainability',
                        confidence='low',
                        tags=['react', 'performance', 'memoization'],
                        evidence=Evidence(kind='heuristic', pattern='map/filter/reduce in render'),
                    )
                )
    return signals


def next_use_client(ctx: FileContext) -> list[Signal]:
    if not _uses_next(ctx):
        return []
    return [
        ctx.line_signal(
            index,
            id='next-use-client-not-first',
            title='"use client" Not at Top',
            category='side-effect',
            reason='"use client" directive must be at top of file',
            weight=0.7,
            signal_class='behavioral',
            confidence='high',
            tags=['next', 'client', 'server-components'],
            evidence=Evidence(kind='regex', pattern='"use client" not at line 1'),
        )
        for index in ctx.focus_indices()
        if index > 0 and '"use client"' in ctx.lines[index]
    ]


REACT = FrameworkLayer(
    name='react',
    applies=is_react_file,
    rules=REACT_RULES + NEXT_RULES,
    probes=(
        effect_without_deps,
        custom_hooks,
        inline_styles,
        inline_handlers,
        state_hazards,
        render_performance,
        next_use_client,
    ),
)
