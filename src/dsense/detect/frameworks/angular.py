"""Angular layer: components, services and RxJS usage."""

import re

from dsense.detect.layer import FrameworkLayer
from dsense.detect.rules import FileContext, Rule, text
from dsense.models import ActionRecommendation, Evidence, Signal

ANGULAR_IMPORT = re.compile(r'''from\s+['"]@angular/''')
ANGULAR_FILE_MARKERS = (
    '.component.',
    '.service.',
    '.directive.',
    '.pipe.',
    '.module.',
    '.guard.',
    '.interceptor.',
    '.resolver.',
)

SUBSCRIBE_CALL = re.compile(r'\.subscribe\s*\(')
HTTP_CALL = re.compile(r'this\.http\.\w+\s*\(')

WINDOW_NESTED_SUBSCRIBE = 9
LARGE_COMPONENT_LINES = 100


def is_angular_file(path: str, content: str) -> bool:
    """True for Angular-conventional file names or files importing @angular/*."""
    if any(marker in path for marker in ANGULAR_FILE_MARKERS):
        return True
    return ANGULAR_IMPORT.search(content) is not None


def _is_service(ctx: FileContext) -> bool:
    return '.service.' in ctx.path


FIX_SUBSCRIPTION_LEAK = ActionRecommendation(
    type='mitigation_steps',
    text='Fix subscription leak',
    steps=[
        'Use async pipe in template instead of .subscribe()',
        'Add takeUntil(destroy$) before subscribe',
        'Use takeUntilDestroyed() from @angular/core/rxjs-interop',
        'Store subscription and unsubscribe in ngOnDestroy',
    ],
)
FLATTEN_SUBSCRIBES = ActionRecommendation(
    type='mitigation_steps',
    text='Flatten nested subscribes',
    steps=[
        'Use switchMap for replacing inner observable',
        'Use mergeMap for parallel execution',
        'Use concatMap for sequential execution',
    ],
)
HANDLE_HTTP_ERRORS = ActionRecommendation(
    type='mitigation_steps',
    text='Add error handling to HTTP calls',
    steps=[
        'Add catchError operator to pipe',
        'Return fallback value or rethrow',
        'Consider global error interceptor',
    ],
)

ANGULAR_RULES = (
    Rule(
        id='angular-dom-access',
        pattern=re.compile(r'document\.|ElementRef|nativeElement'),
        category='side-effect',
        title='Direct DOM Access',
        reason='Direct DOM access - use Renderer2 for SSR compatibility and security',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'dom', 'ssr'),
    ),
    Rule(
        id='angular-io-decorator',
        pattern=re.compile(r'@Input\s*\(|@Output\s*\('),
        category='signature',
        title='Component Input/Output',
        reason='Component API change - verify parent components are updated',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'component', 'api'),
    ),
    Rule(
        id='angular-viewchild',
        pattern=re.compile(r'@ViewChild\s*\(|@ContentChild\s*\(|@ViewChildren\s*\('),
        category='side-effect',
        title='ViewChild Query',
        reason='ViewChild query - verify timing (available after ngAfterViewInit)',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'viewchild', 'lifecycle'),
    ),
    Rule(
        id='angular-host-decorator',
        pattern=re.compile(r'@HostListener\s*\(|@HostBinding\s*\('),
        category='async',
        title='Host Listener/Binding',
        reason='Host decorator - verify event cleanup and performance',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'host', 'events'),
    ),
    Rule(
        id='angular-public-subject',
        pattern=re.compile(r'public\s+\w+\s*=\s*new\s+(?:Subject|BehaviorSubject|ReplaySubject)'),
        category='signature',
        title='Public Subject',
        reason='Public Subject exposes internal state - expose as Observable with asObservable()',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'rxjs', 'encapsulation'),
    ),
    Rule(
        id='angular-tap-side-effect',
        pattern=re.compile(r'\.pipe\s*\([^)]*tap\s*\('),
        category='side-effect',
        title='tap Operator',
        reason='tap operator for side effects - verify it does not affect stream',
        weight=0.3,
        signal_class='behavioral',
        confidence='medium',
        tags=('angular', 'rxjs', 'side-effect'),
    ),
    Rule(
        id='angular-share-replay',
        pattern=re.compile(r'shareReplay\s*\(\s*\d+\s*\)'),
        category='async',
        title='shareReplay Without refCount',
        reason='shareReplay without refCount can cause memory leaks - add { refCount: true }',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'rxjs', 'memory'),
        forbids=re.compile(r'refCount'),
    ),
)

SERVICE_RULES = (
    Rule(
        id='angular-service-state',
        pattern=re.compile(r'private\s+\w+\s*=\s*(?:new\s+BehaviorSubject|new\s+Subject|\[|\{)'),
        category='side-effect',
        title='Service State Management',
        reason='Service managing state - consider NgRx/NGXS for complex state',
        weight=0.4,
        signal_class='behavioral',
        confidence='medium',
        tags=('angular', 'service', 'state'),
        when=_is_service,
    ),
    Rule(
        id='angular-http-call',
        pattern=HTTP_CALL,
        category='side-effect',
        title='HTTP Call',
        reason='HTTP call - verify error handling and loading states',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('angular', 'http', 'async'),
        when=_is_service,
    ),
)


def subscription_leak(ctx: FileContext) -> list[Signal]:
    """Focus lines subscribe without any unsubscribe, async pipe or takeUntil."""
    subscribe_lines = []
    cleaned_up = False
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if SUBSCRIBE_CALL.search(line):
            subscribe_lines.append(index + 1)
        if re.search(r'\.unsubscribe\s*\(|\|\s*async|takeUntil|takeUntilDestroyed', line):
            cleaned_up = True

    if not subscribe_lines or cleaned_up:
        return []
    return [
        ctx.signal(
            id='angular-subscription-leak',
            title='Subscription Memory Leak',
            category='async',
            reason='Subscription without unsubscribe - use takeUntil, async pipe, or manual unsubscribe',
            weight=0.8,
            lines=subscribe_lines,
            signal_class='behavioral',
            confidence='high',
            tags=['angular', 'rxjs', 'memory'],
            evidence=Evidence(kind='heuristic', details={'subscribeCount': len(subscribe_lines)}),
            actions=[FIX_SUBSCRIPTION_LEAK],
        )
    ]


def nested_subscribe(ctx: FileContext) -> list[Signal]:
    return [
        ctx.line_signal(
            index,
            id='angular-nested-subscribe',
            title='Nested Subscribe',
            category='async',
            reason='Nested subscribe - use switchMap/mergeMap/concatMap instead',
            weight=0.7,
            signal_class='behavioral',
            confidence='high',
            tags=['angular', 'rxjs', 'anti-pattern'],
            evidence=Evidence(kind='regex', pattern='nested subscribe'),
            actions=[FLATTEN_SUBSCRIBES],
        )
        for index in ctx.focus_indices()
        if SUBSCRIBE_CALL.search(ctx.lines[index])
        and SUBSCRIBE_CALL.search(text(ctx.following(index, WINDOW_NESTED_SUBSCRIBE)))
    ]


def missing_onpush(ctx: FileContext) -> list[Signal]:
    """Large @Component in focus without ChangeDetectionStrategy.OnPush."""
    if len(ctx.lines) <= LARGE_COMPONENT_LINES or 'ChangeDetectionStrategy.OnPush' in ctx.content:
        return []
    if not any(re.search(r'@Component\s*\(', ctx.lines[index]) for index in ctx.focus_indices()):
        return []
    return [
        ctx.signal(
            id='angular-no-onpush',
            title='Missing OnPush Strategy',
            category='complexity',
            reason='Large component without OnPush change detection - consider adding for performance',
            weight=0.3,
            signal_class='maintainability',
            confidence='medium',
            tags=['angular', 'performance', 'change-detection'],
            evidence=Evidence(kind='heuristic', details={'loc': len(ctx.lines)}),
        )
    ]


def http_without_error_handling(ctx: FileContext) -> list[Signal]:
    if not _is_service(ctx):
        return []
    http_lines = []
    catch_errors = 0
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if HTTP_CALL.search(line):
            http_lines.append(index + 1)
        if re.search(r'catchError|\.catch\(', line):
            catch_errors += 1

    if not http_lines or catch_errors:
        return []
    return [
        ctx.signal(
            id='angular-http-no-error',
            title='HTTP Without Error Handling',
            category='async',
            reason='HTTP calls without error handling - add catchError operator',
            weight=0.6,
            lines=http_lines,
            signal_class='behavioral',
            confidence='high',
            tags=['angular', 'http', 'error-handling'],
            evidence=Evidence(kind='heuristic', details={'httpCalls': len(http_lines), 'catchErrors': 0}),
            actions=[HANDLE_HTTP_ERRORS],
        )
    ]


ANGULAR = FrameworkLayer(
    name='angular',
    applies=is_angular_file,
    rules=ANGULAR_RULES + SERVICE_RULES,
    probes=(subscription_leak, nested_subscribe, missing_onpush, http_without_error_handling),
)
