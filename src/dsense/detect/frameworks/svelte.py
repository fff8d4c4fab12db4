"""Svelte and SvelteKit layer: reactivity, stores, lifecycle and routes."""

import re

from dsense.detect.layer import FrameworkLayer
from dsense.detect.rules import FileContext, Rule
from dsense.models import ActionRecommendation, Evidence, Signal

SVELTE_IMPORT = re.compile(r'''from\s+['"]svelte['"]|from\s+['"]\$app/''')
SVELTEKIT_ROUTE_MARKERS = ('+page', '+layout', '+server', '+error')

REACTIVE_LABEL = re.compile(r'^\s*\$:')
REACTIVE_SIDE_EFFECT = re.compile(r'\$:\s*(?:console\.|fetch\(|await|\.set\(|=(?!=))')
REACTIVE_ASSIGNMENT = re.compile(r'^\s*\$:\s*\w+\s*=')
STORE_FACTORY = re.compile(r'\b(writable|readable|derived)\s*\(')
HTTP_HANDLER = re.compile(r'export\s+(?:async\s+)?function\s+(GET|POST|PUT|PATCH|DELETE)')

COMPLEX_EXPRESSION_LENGTH = 100
COMPLEX_EXPRESSION_OPERATORS = 3


def is_svelte_file(path: str, content: str) -> bool:
    """True for .svelte files, SvelteKit route files, or svelte/$app imports."""
    if path.endswith('.svelte'):
        return True
    if any(marker in path for marker in SVELTEKIT_ROUTE_MARKERS):
        return True
    return SVELTE_IMPORT.search(content) is not None


def _is_kit_file(ctx: FileContext) -> bool:
    return any(marker in ctx.path for marker in SVELTEKIT_ROUTE_MARKERS) or 'hooks' in ctx.path


REVIEW_REACTIVE_EFFECT = ActionRecommendation(
    type='mitigation_steps',
    text='Review reactive side effect',
    steps=[
        'Consider moving side effects to onMount or event handlers',
        'Ensure no circular dependencies that could cause infinite loops',
        'Use debounce for expensive operations',
    ],
)
CLEANUP_SUBSCRIPTION = ActionRecommendation(
    type='mitigation_steps',
    text='Ensure subscription cleanup',
    steps=[
        'Store the unsubscribe function returned by .subscribe()',
        'Call unsubscribe in onDestroy lifecycle hook',
        'Consider using $ auto-subscription syntax instead',
    ],
)
ASYNC_ON_MOUNT = ActionRecommendation(
    type='mitigation_steps',
    text='Handle async operations properly',
    steps=[
        'Return a cleanup function for subscriptions/intervals',
        'Handle async errors with try/catch',
        'Use {#await} blocks for async data',
    ],
)

# (hook name, runs synchronously during update)
LIFECYCLE_HOOKS = (
    ('onMount', False),
    ('beforeUpdate', True),
    ('afterUpdate', True),
    ('onDestroy', False),
    ('tick', False),
)


def _lifecycle_rule(name: str, during_update: bool) -> Rule:
    if during_update:
        reason = f'{name} runs synchronously during update - avoid heavy operations'
    else:
        reason = f'{name} lifecycle hook - verify timing and cleanup'
    return Rule(
        id=f'svelte-lifecycle-{name.lower()}',
        pattern=re.compile(rf'\b{name}\s*\('),
        category='async',
        title=f'{name} Lifecycle Hook',
        reason=reason,
        weight=0.5 if during_update else 0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('svelte', 'lifecycle', name.lower()),
        actions=(ASYNC_ON_MOUNT,) if name == 'onMount' else (),
    )


SVELTE_RULES = (
    Rule(
        id='svelte-reactive-side-effect',
        pattern=REACTIVE_SIDE_EFFECT,
        category='side-effect',
        title='Reactive Side Effect',
        reason='Reactive block with side effect - may cause infinite loops or race conditions',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('svelte', 'reactivity', 'side-effect'),
        actions=(REVIEW_REACTIVE_EFFECT,),
        requires=REACTIVE_LABEL,
    ),
    Rule(
        id='svelte-reactive-statement',
        pattern=REACTIVE_LABEL,
        category='side-effect',
        title='Reactive Statement',
        reason='Reactive statement - verify dependency tracking',
        weight=0.2,
        signal_class='maintainability',
        confidence='high',
        tags=('svelte', 'reactivity'),
        forbids=REACTIVE_SIDE_EFFECT,
    ),
    Rule(
        id='svelte-bind',
        pattern=re.compile(r'bind:\w+'),
        category='side-effect',
        title='Two-way Binding',
        reason='Two-way binding - verify data flow and potential circular updates',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('svelte', 'binding'),
    ),
    Rule(
        id='svelte-component-binding',
        pattern=re.compile(r'bind:this|bind:group|bind:files'),
        category='side-effect',
        title='Component/Special Binding',
        reason='Special binding may have lifecycle implications',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('svelte', 'binding', 'component'),
    ),
    Rule(
        id='svelte-store-manual-subscription',
        pattern=re.compile(r'\.subscribe\s*\('),
        category='async',
        title='Manual Store Subscription',
        reason='Manual store subscription - must be unsubscribed to prevent memory leaks',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('svelte', 'stores', 'subscription', 'memory'),
        actions=(CLEANUP_SUBSCRIPTION,),
    ),
    Rule(
        id='svelte-store-update',
        pattern=re.compile(r'\.update\s*\(|\.set\s*\('),
        category='side-effect',
        title='Store Update',
        reason='Store mutation - triggers all subscribers',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('svelte', 'stores', 'mutation'),
    ),
) + tuple(_lifecycle_rule(name, during_update) for name, during_update in LIFECYCLE_HOOKS)

SVELTEKIT_RULES = (
    Rule(
        id='sveltekit-load',
        pattern=re.compile(r'export\s+(?:const|async\s+function|function)\s+load'),
        category='async',
        title='Load Function',
        reason='SvelteKit load function - verify error handling and data dependencies',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'load', 'data-fetching'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Best practices for load functions',
                steps=[
                    'Use error() for expected errors, throw for unexpected',
                    'Implement proper caching strategy',
                    'Consider parallel data fetching with Promise.all',
                    'Use depends() for invalidation',
                ],
            ),
        ),
        when=_is_kit_file,
    ),
    Rule(
        id='sveltekit-actions',
        pattern=re.compile(r'export\s+const\s+actions'),
        category='async',
        title='Form Actions',
        reason='SvelteKit form actions - verify validation and error handling',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'actions', 'forms'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Best practices for form actions',
                steps=[
                    'Validate all form data server-side',
                    'Use fail() for validation errors',
                    'Implement CSRF protection',
                    'Handle file uploads securely',
                ],
            ),
        ),
        when=_is_kit_file,
    ),
    Rule(
        id='sveltekit-hook',
        pattern=re.compile(r'export\s+(?:async\s+)?function\s+handle'),
        category='side-effect',
        title='Server Hook',
        reason='SvelteKit hook - runs on every request, verify performance',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'hooks', 'middleware'),
        actions=(
            ActionRecommendation(
                type='review_request',
                text='Review hook performance impact',
                reviewers=['@backend-team'],
            ),
        ),
        when=_is_kit_file,
    ),
    Rule(
        id='sveltekit-redirect',
        pattern=re.compile(r'\bredirect\s*\('),
        category='side-effect',
        title='Redirect',
        reason='SvelteKit redirect - verify status code and destination',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'redirect'),
        when=_is_kit_file,
    ),
    Rule(
        id='sveltekit-error',
        pattern=re.compile(r'\berror\s*\('),
        category='side-effect',
        title='Error Response',
        reason='SvelteKit error - verify error handling',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'error'),
        forbids=re.compile(r'\bredirect\s*\('),
        when=_is_kit_file,
    ),
    Rule(
        id='sveltekit-page-store',
        pattern=re.compile(r'''\$page\.|from\s+['"]\$app/stores['"]'''),
        category='side-effect',
        title='Page Store Access',
        reason='Accessing page store - verify SSR compatibility',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'stores', 'page'),
        when=_is_kit_file,
    ),
    Rule(
        id='sveltekit-navigation',
        pattern=re.compile(r'\bgoto\s*\(|\binvalidate\s*\(|\binvalidateAll\s*\('),
        category='side-effect',
        title='Programmatic Navigation',
        reason='Navigation or invalidation - verify user experience and data consistency',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('sveltekit', 'navigation'),
        when=_is_kit_file,
    ),
)


def complex_reactive(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if not REACTIVE_ASSIGNMENT.search(line):
            continue
        parts = line.split('=')
        expression = parts[1] if len(parts) > 1 else ''
        operators = len(re.findall(r'&&|\|\||\?', expression))
        if len(expression) > COMPLEX_EXPRESSION_LENGTH or operators > COMPLEX_EXPRESSION_OPERATORS:
            signals.append(
                ctx.line_signal(
                    index,
                    id='svelte-complex-reactive',
                    title='Complex Reactive Declaration',
                    category='complexity',
                    reason='Complex reactive expression - consider extracting to a function',
                    weight=0.3,
                    signal_class='maintainability',
                    confidence='medium',
                    tags=['svelte', 'reactivity', 'complexity'],
                    evidence=Evidence(kind='regex', pattern='complex expression'),
                )
            )
    return signals


def stores(ctx: FileContext) -> list[Signal]:
    """Store factories, plus $store auto-subscriptions on changed lines only."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]

        found = STORE_FACTORY.search(line)
        if found:
            store_type = found.group(1)
            signals.append(
                ctx.line_signal(
                    index,
                    id=f'svelte-store-{store_type}',
                    title=f'{store_type.capitalize()} Store',
                    category='side-effect',
                    reason=f'{store_type} store creation - verify subscription cleanup',
                    weight=0.3,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['svelte', 'stores', store_type],
                    evidence=Evidence(kind='regex', pattern=f'{store_type}\\('),
                )
            )

        if re.search(r'\$\w+', line) and not re.search(r'\$:|\$\{', line) and ctx.is_changed(index):
            signals.append(
                ctx.line_signal(
                    index,
                    id='svelte-store-auto-subscription',
                    title='Store Auto-subscription',
                    category='async',
                    reason='Store value accessed with $ - auto-subscribed and cleaned up',
                    weight=0.1,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['svelte', 'stores', 'subscription'],
                    evidence=Evidence(kind='regex', pattern='\\$\\w+'),
                )
            )
    return signals


def api_endpoints(ctx: FileContext) -> list[Signal]:
    if not _is_kit_file(ctx):
        return []
    signals = []
    for index in ctx.focus_indices():
        found = HTTP_HANDLER.search(ctx.lines[index])
        if found is None:
            continue
        method = found.group(1)
        signals.append(
            ctx.line_signal(
                index,
                id='sveltekit-api-endpoint',
                title=f'API Endpoint ({method})',
                category='signature',
                reason='SvelteKit API endpoint - verify authentication and validation',
                weight=0.4,
                signal_class='behavioral',
                confidence='high',
                tags=['sveltekit', 'api', method.lower()],
                evidence=Evidence(kind='regex', pattern=f'export.*{method}'),
            )
        )
    return signals


SVELTE = FrameworkLayer(
    name='svelte',
    applies=is_svelte_file,
    rules=SVELTE_RULES + SVELTEKIT_RULES,
    probes=(complex_reactive, stores, api_endpoints),
)
