"""Vue layer: Composition API, Options API and SFC template checks."""

import re

from dsense.detect.layer import FrameworkLayer
from dsense.detect.rules import FileContext, Rule
from dsense.models import ActionRecommendation, Evidence, Signal

VUE_IMPORT = re.compile(r'''import\s+.*\s+from\s+['"]vue['"]|from\s+['"]@vue/''')
TEMPLATE_BLOCK = re.compile(r'<template>([\s\S]*?)</template>')

WINDOW_WATCH_CLEANUP = 15
WINDOW_COMPUTED_BODY = 10

MANY_REFS_THRESHOLD = 10

STANDARD_COMPOSABLES = frozenset({'useState', 'useRoute', 'useRouter', 'useStore', 'useHead', 'useFetch'})


def is_vue_file(path: str, content: str) -> bool:
    """True for .vue single-file components or files importing vue."""
    if path.endswith('.vue'):
        return True
    return VUE_IMPORT.search(content) is not None


def _is_sfc(ctx: FileContext) -> bool:
    return ctx.path.endswith('.vue')


ADD_WATCH_CLEANUP = ActionRecommendation(
    type='mitigation_steps',
    text='Add cleanup to watcher',
    steps=[
        'Use onCleanup callback for side effects',
        'Store stop handle for manual cleanup',
        'Consider using watchEffect with automatic cleanup',
    ],
)
PURE_COMPUTED = ActionRecommendation(
    type='mitigation_steps',
    text='Remove side effects from computed',
    steps=[
        'Move API calls to methods or watch',
        'Use computed only for derived state',
        'Consider using watchEffect for side effects',
    ],
)
EMIT_INSTEAD = ActionRecommendation(
    type='mitigation_steps',
    text='Fix props mutation',
    steps=[
        'Emit event to parent component',
        'Use local copy of prop with watch',
        'Consider v-model for two-way binding',
    ],
)

VUE_RULES = (
    Rule(
        id='vue-watch-no-cleanup',
        pattern=re.compile(r'\bwatch\s*\(|\bwatchEffect\s*\('),
        category='async',
        title='Watch Without Cleanup',
        reason='watch/watchEffect without cleanup can cause memory leaks',
        weight=0.6,
        signal_class='behavioral',
        confidence='medium',
        tags=('vue', 'reactivity', 'memory'),
        actions=(ADD_WATCH_CLEANUP,),
        forbids=re.compile(r'onCleanup|stop\s*\('),
        after=WINDOW_WATCH_CLEANUP,
    ),
    Rule(
        id='vue-computed-side-effect',
        pattern=re.compile(r'\bcomputed\s*\('),
        category='side-effect',
        title='Computed with Side Effects',
        reason='Computed properties should be pure - move side effects to watch/methods',
        weight=0.7,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'computed', 'anti-pattern'),
        actions=(PURE_COMPUTED,),
        requires=re.compile(r'fetch\(|axios|\.post\(|\.get\(|console\.'),
        after=WINDOW_COMPUTED_BODY,
    ),
    Rule(
        id='vue-async-mounted',
        pattern=re.compile(r'onMounted\s*\(\s*async'),
        category='async',
        title='Async onMounted',
        reason='Async onMounted - ensure proper cleanup and error handling',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'lifecycle', 'async'),
    ),
    Rule(
        id='vue-define-props',
        pattern=re.compile(r'defineProps\s*\(|defineEmits\s*\('),
        category='signature',
        title='Props/Emits Definition',
        reason='Component API change - verify parent components are updated',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'props', 'api'),
    ),
    Rule(
        id='vue-provide-inject',
        pattern=re.compile(r'\bprovide\s*\(|\binject\s*\('),
        category='side-effect',
        title='Provide/Inject',
        reason='Dependency injection - verify all consumers handle updates correctly',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'di', 'context'),
    ),
    Rule(
        id='vue-deep-watch',
        pattern=re.compile(r'deep:\s*true'),
        category='side-effect',
        title='Deep Watcher',
        reason='Deep watcher can cause performance issues - consider flattening data',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'watch', 'performance'),
    ),
    Rule(
        id='vue-props-mutation',
        pattern=re.compile(r'this\.\$props\.\w+\s*=|props\.\w+\s*='),
        category='side-effect',
        title='Props Mutation',
        reason='Direct props mutation is an anti-pattern - emit event to parent instead',
        weight=0.8,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'props', 'anti-pattern'),
        actions=(EMIT_INSTEAD,),
        forbids=re.compile(r'props\.\w+\s*=='),
    ),
    Rule(
        id='vue-force-update',
        pattern=re.compile(r'\$forceUpdate\s*\('),
        category='side-effect',
        title='$forceUpdate Usage',
        reason='$forceUpdate is an anti-pattern - use reactive data instead',
        weight=0.7,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'reactivity', 'anti-pattern'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Replace $forceUpdate',
                steps=['Make the changing value reactive', 'Use a key to remount'],
            ),
        ),
    ),
    Rule(
        id='vue-next-tick',
        pattern=re.compile(r'\$nextTick\s*\(|nextTick\s*\('),
        category='async',
        title='nextTick Usage',
        reason='nextTick defers execution - verify timing is correct',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'async', 'timing'),
    ),
    Rule(
        id='vue-refs-access',
        pattern=re.compile(r'\$refs\.\w+\.'),
        category='side-effect',
        title='Direct $refs Access',
        reason='Direct $refs DOM access - verify ref exists and timing is correct',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('vue', 'refs', 'dom'),
    ),
)


def many_refs(ctx: FileContext) -> list[Signal]:
    ref_count = reactive_count = 0
    ref_lines = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if re.search(r'\bref\s*\(', line):
            ref_count += 1
            ref_lines.append(index + 1)
        if re.search(r'\breactive\s*\(', line):
            reactive_count += 1
            ref_lines.append(index + 1)

    total = ref_count + reactive_count
    if total <= MANY_REFS_THRESHOLD:
        return []
    return [
        ctx.signal(
            id='vue-many-refs',
            title='Many Reactive References',
            category='complexity',
            reason=f'{total} reactive references - consider extracting to composable',
            weight=0.4,
            lines=ref_lines[:5],
            signal_class='maintainability',
            confidence='high',
            tags=['vue', 'reactivity', 'complexity'],
            evidence=Evidence(kind='heuristic', details={'refCount': ref_count, 'reactiveCount': reactive_count}),
        )
    ]


def custom_composables(ctx: FileContext) -> list[Signal]:
    found: dict[str, int] = {}
    for index in ctx.focus_indices():
        for name in re.findall(r'\buse[A-Z]\w+', ctx.lines[index]):
            if name not in STANDARD_COMPOSABLES and name not in found:
                found[name] = index + 1
    if not found:
        return []
    names = list(found)
    return [
        ctx.signal(
            id='vue-composables',
            title='Custom Composables',
            category='signature',
            reason=f"{len(names)} custom composable(s): {', '.join(names[:3])}",
            weight=0.2,
            lines=list(found.values()),
            signal_class='behavioral',
            confidence='high',
            tags=['vue', 'composables', 'custom'],
            evidence=Evidence(kind='regex', details={'composables': names}),
        )
    ]


def template_patterns(ctx: FileContext) -> list[Signal]:
    """v-for/v-if and inline handlers inside the first <template> block of an SFC."""
    if not _is_sfc(ctx):
        return []
    found = TEMPLATE_BLOCK.search(ctx.content)
    if found is None:
        return []

    # Line number of the <template> tag; the block's first line shares it
    start_line = ctx.content.count('\n', 0, found.start()) + 1
    signals = []
    for offset, line in enumerate(found.group(1).split('\n')):
        line_number = start_line + offset
        if not ctx.focus.should_analyze_line(line_number):
            continue
        if re.search(r'v-for.*v-if|v-if.*v-for', line):
            signals.append(
                ctx.signal(
                    id='vue-vfor-vif',
                    title='v-for with v-if',
                    category='complexity',
                    reason='v-for with v-if on same element - use computed property to filter',
                    weight=0.5,
                    lines=[line_number],
                    snippet=line.strip(),
                    signal_class='maintainability',
                    confidence='high',
                    tags=['vue', 'template', 'performance'],
                    evidence=Evidence(kind='regex', pattern='v-for.*v-if'),
                )
            )
        if re.search(r'@\w+="[^"]*\(', line):
            signals.append(
                ctx.signal(
                    id='vue-inline-handler',
                    title='Inline Event Handler',
                    category='side-effect',
                    reason='Inline event handler - consider extracting to method',
                    weight=0.2,
                    lines=[line_number],
                    snippet=line.strip(),
                    signal_class='maintainability',
                    confidence='medium',
                    tags=['vue', 'template', 'handlers'],
                    evidence=Evidence(kind='regex', pattern='@\\w+="'),
                )
            )
    return signals


VUE = FrameworkLayer(
    name='vue',
    applies=is_vue_file,
    rules=VUE_RULES,
    probes=(many_refs, custom_composables, template_patterns),
)
