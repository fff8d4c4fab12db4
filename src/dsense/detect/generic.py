"""Generic signal battery run on every file.

Single-line checks are rows of declarative rule tables; checks that count,
aggregate or look at neighbouring lines are small probe functions working on
bounded windows.
"""

import re

from dsense.detect.layer import FrameworkLayer
from dsense.detect.rules import FileContext, Rule, count_rule, first_match_rule, text
from dsense.models import ActionRecommendation, Evidence, Signal

# Bounded windows, in lines
FUNCTION_SCAN_LIMIT = 200
WINDOW_TRY_BEFORE_PARSE = 5
WINDOW_THEN_AFTER_PROMISE = 3
WINDOW_ASYNC_AROUND_LET = 10
WINDOW_LET_REASSIGN = 20
WINDOW_INTERVAL_CLEAR = 30
WINDOW_LOOP_EXIT = 20

# Complexity thresholds
LARGE_FILE_LOC = 500
LARGE_FILE_RATIO = 0.1
MEDIUM_FILE_LOC = 300
MEDIUM_FILE_RATIO = 0.15
DEEP_NESTING_LEVEL = 5
LONG_FUNCTION_LINES = 50
MIN_FUNCTION_LINES = 10
HIGH_PARAM_COUNT = 5

MAGIC_NUMBER_ALLOWLIST = frozenset(
    {80, 443, 3000, 8080, 8000, 200, 201, 204, 400, 401, 403, 404, 500, 1000, 1024, 2048, 4096}
)

SECURITY_REVIEW = ActionRecommendation(
    type='review_request',
    text='Security review required - dynamic code execution',
    reviewers=['@security-team'],
)
COMMAND_INJECTION_REVIEW = ActionRecommendation(
    type='review_request',
    text='Security review - potential command injection',
    reviewers=['@security-team'],
)
PREVENT_XSS = ActionRecommendation(
    type='mitigation_steps',
    text='Prevent XSS',
    steps=[
        'Use DOMPurify to sanitize HTML',
        'Validate and escape user input',
        'Use textContent instead of innerHTML when possible',
    ],
)
REMOVE_SECRETS = ActionRecommendation(
    type='mitigation_steps',
    text='Remove hardcoded secrets',
    steps=[
        'Use environment variables',
        'Use secrets manager (Vault, AWS Secrets, etc.)',
        'Add to .gitignore if config file',
    ],
)
PREVENT_SQL_INJECTION = ActionRecommendation(
    type='mitigation_steps',
    text='Prevent SQL injection',
    steps=['Use parameterized queries', 'Use prepared statements', 'Use ORM with proper escaping'],
)
SHELL_REVIEW = ActionRecommendation(
    type='mitigation_steps',
    text='Harden shell execution',
    steps=['Prefer execFile/spawn with an argument array', 'Validate every argument against an allow-list'],
)
SCRUB_LOGS = ActionRecommendation(
    type='mitigation_steps',
    text='Keep secrets out of logs',
    steps=['Log identifiers instead of values', 'Mask tokens and passwords before logging'],
)
VALIDATE_INPUT = ActionRecommendation(
    type='mitigation_steps',
    text='Validate untrusted objects',
    steps=['Validate the payload against a schema', 'Reject __proto__, constructor and prototype keys'],
)
VALIDATE_URL = ActionRecommendation(
    type='mitigation_steps',
    text='Restrict outbound requests',
    steps=['Check the target host against an allow-list', 'Block private and link-local addresses'],
)
AUDIT_SCRIPT = ActionRecommendation(
    type='review_request',
    text='Review lifecycle script for supply-chain risk',
    reviewers=['@security-team'],
)
VERIFY_EXIT = ActionRecommendation(
    type='mitigation_steps',
    text='Verify process termination',
    steps=['Flush pending I/O before exiting', 'Prefer throwing or setting process.exitCode'],
)
HANDLE_ERROR = ActionRecommendation(
    type='mitigation_steps',
    text='Handle or report the error',
    steps=['Log the error with context', 'Rethrow if the caller must know'],
)
ADD_LOOP_EXIT = ActionRecommendation(
    type='mitigation_steps',
    text='Bound the loop',
    steps=['Add a break condition', 'Add a retry counter or timeout'],
)


def _is_typescript(ctx: FileContext) -> bool:
    return ctx.path.endswith(('.ts', '.tsx'))


def _is_manifest(ctx: FileContext) -> bool:
    return ctx.path.endswith('package.json')


def _is_test_file(ctx: FileContext) -> bool:
    return '.test.' in ctx.path or '.spec.' in ctx.path


# ============================================================================
# Side effects
# ============================================================================

SIDE_EFFECT_RULES = (
    Rule(
        id='network-fetch',
        pattern=re.compile(r'\bfetch\s*\('),
        category='side-effect',
        title='Fetch Call',
        reason='Network fetch call - verify error handling and loading states',
        weight=0.5,
        tags=('network', 'async'),
    ),
    Rule(
        id='network-axios',
        pattern=re.compile(r'\baxios\b'),
        category='side-effect',
        title='Axios Call',
        reason='Axios HTTP call - verify error handling and timeouts',
        weight=0.5,
        tags=('network', 'async'),
    ),
    Rule(
        id='network-websocket',
        pattern=re.compile(r'\bWebSocket\b'),
        category='side-effect',
        title='WebSocket',
        reason='WebSocket connection - verify cleanup and reconnection logic',
        weight=0.6,
        tags=('network', 'realtime'),
    ),
    Rule(
        id='storage-local',
        pattern=re.compile(r'localStorage\b'),
        category='side-effect',
        title='LocalStorage Access',
        reason='LocalStorage access - consider SSR compatibility',
        weight=0.4,
        tags=('storage', 'browser'),
    ),
    Rule(
        id='storage-session',
        pattern=re.compile(r'sessionStorage\b'),
        category='side-effect',
        title='SessionStorage Access',
        reason='SessionStorage access - consider SSR compatibility',
        weight=0.4,
        tags=('storage', 'browser'),
    ),
    Rule(
        id='storage-indexeddb',
        pattern=re.compile(r'indexedDB\b'),
        category='side-effect',
        title='IndexedDB',
        reason='IndexedDB access - verify async handling',
        weight=0.5,
        tags=('storage', 'browser', 'async'),
    ),
    Rule(
        id='timer-timeout',
        pattern=re.compile(r'\bsetTimeout\s*\('),
        category='side-effect',
        title='setTimeout',
        reason='setTimeout - verify cleanup on unmount',
        weight=0.3,
        tags=('timer', 'async'),
    ),
    Rule(
        id='timer-interval',
        pattern=re.compile(r'\bsetInterval\s*\('),
        category='side-effect',
        title='setInterval',
        reason='setInterval - verify cleanup to prevent memory leaks',
        weight=0.4,
        tags=('timer', 'async', 'memory'),
    ),
    Rule(
        id='global-window',
        pattern=re.compile(r'\bwindow\.'),
        category='side-effect',
        title='Window Access',
        reason='Window object access - consider SSR compatibility',
        weight=0.3,
        tags=('global', 'browser'),
    ),
    Rule(
        id='global-mutation',
        pattern=re.compile(r'\bglobal\.'),
        category='side-effect',
        title='Global Access',
        reason='Global object mutation - verify scope and side effects',
        weight=0.3,
        tags=('global',),
    ),
    Rule(
        id='process-env',
        pattern=re.compile(r'process\.env'),
        category='side-effect',
        title='Environment Variable',
        reason='Environment variable access - verify availability',
        weight=0.2,
        tags=('process', 'config'),
    ),
    Rule(
        id='process-exit',
        pattern=re.compile(r'process\.exit'),
        category='side-effect',
        title='Process Exit',
        reason='Process exit call - verify this is intentional',
        weight=0.7,
        signal_class='behavioral',
        tags=('process', 'critical'),
        actions=(VERIFY_EXIT,),
    ),
    Rule(
        id='process-child',
        pattern=re.compile(r'child_process'),
        category='side-effect',
        title='Child Process',
        reason='Child process spawn - verify security and cleanup',
        weight=0.6,
        signal_class='behavioral',
        tags=('process', 'security'),
    ),
    Rule(
        id='fs-operation',
        pattern=re.compile(r'\bfs\.'),
        category='side-effect',
        title='File System Operation',
        reason='File system operation - verify error handling',
        weight=0.5,
        tags=('filesystem', 'node'),
    ),
    Rule(
        id='fs-sync',
        pattern=re.compile(r'\breadFileSync\b|\bwriteFileSync\b'),
        category='side-effect',
        title='Sync File Operation',
        reason='Synchronous file operation - consider async alternative',
        weight=0.6,
        signal_class='behavioral',
        tags=('filesystem', 'sync', 'performance'),
    ),
    Rule(
        id='database-query',
        pattern=re.compile(r'\.query\s*\(|\.execute\s*\('),
        category='side-effect',
        title='Database Query',
        reason='Database query - verify SQL injection prevention',
        weight=0.5,
        signal_class='behavioral',
        tags=('database', 'security'),
    ),
    Rule(
        id='database-orm',
        pattern=re.compile(r'\bprisma\.|\.findMany\(|\.findUnique\(|\.create\(|\.update\('),
        category='side-effect',
        title='ORM Operation',
        reason='ORM database operation - verify transaction handling',
        weight=0.5,
        signal_class='behavioral',
        tags=('database', 'orm'),
    ),
    Rule(
        id='dom-manipulation',
        pattern=re.compile(r'document\.(getElementById|querySelector|createElement)'),
        category='side-effect',
        title='DOM Manipulation',
        reason='Direct DOM manipulation - consider using framework methods',
        weight=0.4,
        tags=('dom', 'browser'),
    ),
    Rule(
        id='dom-innerhtml',
        pattern=re.compile(r'\.innerHTML\s*=|\.outerHTML\s*='),
        category='side-effect',
        title='innerHTML Assignment',
        reason='innerHTML assignment - verify XSS prevention',
        weight=0.5,
        signal_class='behavioral',
        tags=('dom', 'security', 'xss'),
    ),
    Rule(
        id='logging-console',
        pattern=re.compile(r'console\.(log|warn|error|info)'),
        category='side-effect',
        title='Console Output',
        reason='Console output - remove before production',
        weight=0.1,
        signal_class='maintainability',
        tags=('logging', 'debug'),
    ),
)


# ============================================================================
# Async and signature
# ============================================================================

EVENT_PATTERN = re.compile(
    r"\.addEventListener\s*\(|\.on\s*\(\s*['\"][^'\"]+['\"]|\.once\s*\(|\.removeEventListener\s*\("
)

ASYNC_SIGNATURE_RULES = (
    Rule(
        id='event-handler',
        pattern=EVENT_PATTERN,
        category='async',
        title='Event Handler',
        reason='Event handler - verify cleanup on unmount/destroy',
        weight=0.3,
        signal_class='behavioral',
        confidence='medium',
        tags=('events', 'cleanup'),
    ),
)

async_functions = count_rule(
    id='async-await',
    pattern=re.compile(r'\basync\s+'),
    category='async',
    title='Async Functions',
    reason='{count} async function(s) in changed area - verify error handling',
    per_match=0.2,
    signal_class='behavioral',
    confidence='high',
    tags=['async', 'error-handling'],
)

promise_patterns = first_match_rule(
    id='promise-pattern',
    patterns=(
        (re.compile(r'new\s+Promise\s*\('), 'new Promise'),
        (re.compile(r'\.then\s*\('), '.then()'),
        (re.compile(r'\.catch\s*\('), '.catch()'),
        (re.compile(r'Promise\.all'), 'Promise.all'),
        (re.compile(r'Promise\.race'), 'Promise.race'),
    ),
    category='async',
    title='Promise Pattern',
    reason='{name} - verify proper error handling and race conditions',
    weight=0.2,
    signal_class='behavioral',
    confidence='medium',
    tags=['async', 'promise'],
)

EXPORT_PATTERNS = (
    (re.compile(r'export\s+(?:default\s+)?function\s+(\w+)'), 'exported function'),
    (re.compile(r'export\s+(?:default\s+)?class\s+(\w+)'), 'exported class'),
    (re.compile(r'export\s+const\s+(\w+)\s*='), 'exported const'),
    (re.compile(r'module\.exports\s*='), 'module.exports'),
)


def export_changes(ctx: FileContext) -> list[Signal]:
    """One signal per export declaration form found on a focus line."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        for pattern, name in EXPORT_PATTERNS:
            found = pattern.search(line)
            if not found:
                continue
            export_name = found.group(1) if found.groups() else 'default'
            signals.append(
                ctx.line_signal(
                    index,
                    id='export-change',
                    title='Export Change',
                    category='signature',
                    reason=f'Changed {name} "{export_name}" - verify dependent modules',
                    weight=0.3,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['api', 'export', 'breaking-change'],
                    evidence=Evidence(kind='regex', pattern=pattern.pattern, details={'exportName': export_name}),
                )
            )
    return signals


_type_exports = count_rule(
    id='type-export-change',
    pattern=re.compile(r'export\s+(?:type|interface)\s+\w+'),
    category='signature',
    title='Type Export Change',
    reason='{count} exported type(s) changed - verify type compatibility',
    per_match=0.2,
    signal_class='behavioral',
    confidence='high',
    tags=['typescript', 'types', 'api'],
)


def type_export_changes(ctx: FileContext) -> list[Signal]:
    return _type_exports(ctx) if _is_typescript(ctx) else []


# ============================================================================
# Complexity
# ============================================================================

FUNCTION_START = re.compile(
    r'(?:function\s+\w+|(?:const|let|var)\s+\w+\s*=\s*(?:async\s*)?\(|(?:async\s+)?(?:\w+|\([^)]*\))\s*=>)'
)
DECLARATION_START = re.compile(r'(?:function\s+\w+|(?:const|let|var)\s+\w+\s*=)')
PARAM_LIST = re.compile(r'(?:function\s+\w+|(?:const|let|var)\s+\w+\s*=\s*(?:async\s*)?)?\(([^)]{80,})\)')


def leading_spaces(line: str) -> int:
    """Length of the leading whitespace run."""
    return len(line) - len(line.lstrip())


def find_functions(lines: list[str]) -> list[tuple[int, int, int]]:
    """Approximate function boundaries.

    A function starts at a line matching FUNCTION_START and ends at the first
    later line that is exactly '}' at no deeper indentation, or just before the
    next declaration at no deeper indentation. The scan is capped at
    FUNCTION_SCAN_LIMIT lines. Not brace, string or template-literal aware.

    Returns:
        (start_line, length, end_line) tuples, 1-based, for functions longer
        than MIN_FUNCTION_LINES.
    """
    functions = []
    for i, line in enumerate(lines):
        if not FUNCTION_START.search(line):
            continue
        length = 1
        end_line = i + 1
        start_indent = leading_spaces(line)

        for j in range(i + 1, min(len(lines), i + FUNCTION_SCAN_LIMIT)):
            next_line = lines[j]
            next_indent = leading_spaces(next_line)
            if next_line.strip() == '}' and next_indent <= start_indent:
                length = j - i + 1
                end_line = j + 1
                break
            if next_indent <= start_indent and DECLARATION_START.search(next_line):
                length = j - i
                end_line = j
                break

        if length > MIN_FUNCTION_LINES:
            functions.append((i + 1, length, end_line))
    return functions


def large_file(ctx: FileContext) -> list[Signal]:
    loc = len(ctx.lines)
    changed = len(ctx.focus.changed)
    ratio = changed / loc
    details = {'loc': loc, 'changedLineCount': changed, 'changeRatio': ratio}

    if loc > LARGE_FILE_LOC and ratio > LARGE_FILE_RATIO:
        title = 'Large File'
        reason = f'Large file ({loc} lines) with {changed} lines changed ({ratio * 100:.0f}%)'
        weight = 0.8 * ratio
    elif loc > MEDIUM_FILE_LOC and ratio > MEDIUM_FILE_RATIO:
        title = 'Medium-Large File'
        reason = f'Medium-large file ({loc} lines) with {changed} lines changed'
        weight = 0.4 * ratio
    else:
        return []

    return [
        ctx.signal(
            id='large-file',
            title=title,
            category='complexity',
            reason=reason,
            weight=weight,
            signal_class='maintainability',
            confidence='high',
            tags=['complexity', 'size'],
            evidence=Evidence(kind='heuristic', details=details),
        )
    ]


def deep_nesting(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        indent_level = leading_spaces(line) // 2
        if indent_level >= DEEP_NESTING_LEVEL and line.strip():
            signals.append(
                ctx.line_signal(
                    index,
                    id='deep-nesting',
                    title='Deep Nesting',
                    category='complexity',
                    reason=f'Deep nesting at level {indent_level} makes code harder to understand',
                    weight=0.3,
                    signal_class='maintainability',
                    confidence='high',
                    tags=['complexity', 'nesting'],
                    evidence=Evidence(kind='heuristic', details={'indentLevel': indent_level}),
                )
            )
    return signals


def long_functions(ctx: FileContext) -> list[Signal]:
    signals = []
    for start_line, length, end_line in find_functions(ctx.lines):
        if length <= LONG_FUNCTION_LINES:
            continue
        if not ctx.focus.any_changed(range(start_line, end_line + 1)):
            continue
        signals.append(
            ctx.signal(
                id='long-function',
                title='Long Function',
                category='complexity',
                reason=f'Function is {length} lines long, consider breaking it down',
                weight=0.5,
                lines=[start_line],
                snippet=ctx.snippet(start_line, min(start_line + 5, end_line)),
                signal_class='maintainability',
                confidence='medium',
                tags=['complexity', 'function-length'],
                evidence=Evidence(
                    kind='heuristic', details={'length': length, 'startLine': start_line, 'endLine': end_line}
                ),
            )
        )
    return signals


def high_params(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        found = PARAM_LIST.search(ctx.lines[index])
        if not found:
            continue
        params = len(found.group(1).split(','))
        if params >= HIGH_PARAM_COUNT:
            signals.append(
                ctx.line_signal(
                    index,
                    id='high-params',
                    title='High Parameter Count',
                    category='complexity',
                    reason=f'Function has {params} parameters, consider using an options object',
                    weight=0.3,
                    signal_class='maintainability',
                    confidence='high',
                    tags=['complexity', 'parameters'],
                    evidence=Evidence(kind='regex', pattern='function params', details={'params': params}),
                )
            )
    return signals


# ============================================================================
# Security
# ============================================================================

SECURITY_RULES = (
    Rule(
        id='sec-eval',
        pattern=re.compile(r'\beval\s*\(|new\s+Function\s*\('),
        category='side-effect',
        title='Dynamic Code Execution',
        reason='eval/Function() executes arbitrary code - critical security risk',
        weight=1.0,
        signal_class='critical',
        confidence='high',
        tags=('security', 'eval', 'injection'),
        actions=(SECURITY_REVIEW,),
    ),
    Rule(
        id='sec-xss-sink',
        pattern=re.compile(r'dangerouslySetInnerHTML|innerHTML\s*=|insertAdjacentHTML'),
        category='side-effect',
        title='XSS Sink',
        reason='HTML injection sink - verify input sanitization',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('security', 'xss', 'injection'),
        actions=(PREVENT_XSS,),
    ),
    Rule(
        id='sec-hardcoded-secret',
        pattern=re.compile(
            r'''(?:api[_-]?key|secret|password|token|auth|credential)\s*[=:]\s*['"][^'"]{8,}['"]''',
            re.I,
        ),
        category='side-effect',
        title='Hardcoded Secret',
        reason='Potential hardcoded secret/credential in code',
        weight=0.9,
        signal_class='critical',
        confidence='medium',
        tags=('security', 'secrets', 'credentials'),
        actions=(REMOVE_SECRETS,),
        snippet='*** REDACTED ***',
    ),
    Rule(
        id='sec-sensitive-log',
        pattern=re.compile(r'console\.(log|info|debug|warn)\s*\([^)]*(?:password|token|secret|auth|credential)', re.I),
        category='side-effect',
        title='Sensitive Data Logging',
        reason='Logging potentially sensitive data',
        weight=0.7,
        signal_class='critical',
        confidence='medium',
        tags=('security', 'logging', 'pii'),
        actions=(SCRUB_LOGS,),
    ),
    Rule(
        id='sec-weak-crypto',
        pattern=re.compile(r'''createHash\s*\(\s*['"](?:md5|sha1)['"]\)|\.digest\s*\(\s*['"]hex['"]'''),
        category='side-effect',
        title='Weak Cryptography',
        reason='MD5/SHA1 are weak for security - use SHA256 or bcrypt',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('security', 'crypto', 'weak'),
        requires=re.compile(r'md5|sha1', re.I),
    ),
    Rule(
        id='sec-cors-wildcard',
        pattern=re.compile(r'''cors\s*\(\s*\{[^}]*origin\s*:\s*['"]\*['"]|Access-Control-Allow-Origin.*\*'''),
        category='side-effect',
        title='CORS Wildcard Origin',
        reason='CORS allows any origin - verify this is intended',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('security', 'cors'),
    ),
    Rule(
        id='sec-sql-injection',
        pattern=re.compile(r'''\.(query|execute)\s*\(\s*[`'"].*\$\{|\.(query|execute)\s*\(\s*\w+\s*\+'''),
        category='side-effect',
        title='SQL Injection Risk',
        reason='SQL query with string concatenation - use parameterized queries',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('security', 'sql-injection', 'database'),
        actions=(PREVENT_SQL_INJECTION,),
    ),
    Rule(
        id='sec-prototype-pollution',
        pattern=re.compile(r'Object\.assign\s*\([^,]+,\s*(?:req\.body|req\.query|JSON\.parse)'),
        category='side-effect',
        title='Prototype Pollution Risk',
        reason='Object.assign with untrusted input - prototype pollution risk',
        weight=0.7,
        signal_class='critical',
        confidence='medium',
        tags=('security', 'prototype-pollution'),
        actions=(VALIDATE_INPUT,),
    ),
    Rule(
        id='sec-ssrf',
        pattern=re.compile(r'fetch\s*\(\s*(?:req\.body|req\.query|req\.params)'),
        category='side-effect',
        title='SSRF Risk',
        reason='Fetching URL from user input - SSRF vulnerability',
        weight=0.9,
        signal_class='critical',
        confidence='medium',
        tags=('security', 'ssrf', 'network'),
        actions=(VALIDATE_URL,),
    ),
    Rule(
        id='sec-unsafe-deserialize',
        pattern=re.compile(r'JSON\.parse\s*\(\s*(?:req\.body|atob|Buffer\.from)'),
        category='side-effect',
        title='Unsafe Deserialization',
        reason='JSON.parse on untrusted input without try/catch',
        weight=0.5,
        signal_class='behavioral',
        confidence='medium',
        tags=('security', 'deserialization'),
        forbids=re.compile(r'try'),
        before=WINDOW_TRY_BEFORE_PARSE,
        after=0,
    ),
    Rule(
        id='sec-npm-script',
        pattern=re.compile(r'postinstall|preinstall|prepare'),
        category='side-effect',
        title='NPM Lifecycle Script',
        reason='NPM lifecycle script changed - verify command is safe',
        weight=0.7,
        signal_class='critical',
        confidence='high',
        tags=('security', 'npm', 'supply-chain'),
        when=_is_manifest,
        actions=(AUDIT_SCRIPT,),
    ),
)

SHELL_EXEC = re.compile(r'exec\s*\(|execSync\s*\(|spawn\s*\(|spawnSync\s*\(')
SHELL_TAINT = re.compile(r'\$\{|\+\s*\w+|`.*\$')


def command_injection(ctx: FileContext) -> list[Signal]:
    """Shell execution, escalated when the line interpolates values."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if not SHELL_EXEC.search(line):
            continue
        tainted = SHELL_TAINT.search(line) is not None
        signals.append(
            ctx.line_signal(
                index,
                id='sec-command-injection',
                title='Command Injection Risk' if tainted else 'Shell Execution',
                category='side-effect',
                reason=(
                    'Shell command with dynamic input - command injection risk'
                    if tainted
                    else 'Shell command execution - verify input validation'
                ),
                weight=1.0 if tainted else 0.7,
                signal_class='critical',
                confidence='high' if tainted else 'medium',
                tags=['security', 'command-injection', 'shell'],
                evidence=Evidence(kind='regex', pattern=SHELL_EXEC.pattern, details={'tainted': tainted}),
                actions=[COMMAND_INJECTION_REVIEW] if tainted else [SHELL_REVIEW],
            )
        )
    return signals


# ============================================================================
# Correctness
# ============================================================================

CORRECTNESS_RULES = (
    Rule(
        id='cor-swallowed-error',
        pattern=re.compile(r'catch\s*\([^)]*\)\s*\{\s*\}|catch\s*\{\s*\}'),
        category='side-effect',
        title='Swallowed Error',
        reason='Empty catch block hides errors - at least log the error',
        weight=0.7,
        signal_class='behavioral',
        confidence='high',
        tags=('correctness', 'error-handling'),
        actions=(HANDLE_ERROR,),
    ),
    Rule(
        id='cor-any-type',
        pattern=re.compile(r':\s*any\b|as\s+any\b'),
        category='complexity',
        title='TypeScript any',
        reason='Using "any" type bypasses TypeScript safety',
        weight=0.3,
        signal_class='maintainability',
        confidence='high',
        tags=('correctness', 'typescript', 'type-safety'),
    ),
    Rule(
        id='cor-interval-no-clear',
        pattern=re.compile(r'setInterval\s*\('),
        category='async',
        title='Interval Without Cleanup',
        reason='setInterval without clearInterval - memory leak risk',
        weight=0.6,
        signal_class='behavioral',
        confidence='medium',
        tags=('correctness', 'timer', 'memory-leak'),
        evidence_kind='heuristic',
        forbids=re.compile(r'clearInterval'),
        after=WINDOW_INTERVAL_CLEAR,
    ),
    Rule(
        id='cor-infinite-loop',
        pattern=re.compile(r'while\s*\(\s*true\s*\)|for\s*\(\s*;\s*;\s*\)'),
        category='complexity',
        title='Potential Infinite Loop',
        reason='Infinite loop without visible exit condition',
        weight=0.7,
        signal_class='behavioral',
        confidence='medium',
        tags=('correctness', 'loop', 'infinite'),
        actions=(ADD_LOOP_EXIT,),
        forbids=re.compile(r'break|return|throw|maxRetries|retryCount|attempt'),
        after=WINDOW_LOOP_EXIT,
    ),
    Rule(
        id='cor-complex-regex',
        pattern=re.compile(r'new\s+RegExp\s*\(|/[^/]+/[gimsuvy]*'),
        category='complexity',
        title='Complex Regex',
        reason='Complex regex pattern - risk of catastrophic backtracking',
        weight=0.4,
        signal_class='behavioral',
        confidence='medium',
        tags=('correctness', 'regex', 'performance'),
        requires=re.compile(r'\(\?=|\(\?!|\(\?<=|\(\?<!|\{[\d,]+\}.*\{[\d,]+\}'),
    ),
)

PROMISE_CALL = re.compile(r'^\s*(?:fetch|axios|Promise)\s*\(|^\s*\w+\.\w+Async\s*\(')
LET_DECLARATION = re.compile(r'let\s+(\w+)\s*=')


def unhandled_promises(ctx: FileContext) -> list[Signal]:
    """Promise-shaped call with neither await on the line nor .then nearby.

    Best-effort text heuristic; no data-flow analysis.
    """
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if not PROMISE_CALL.search(line):
            continue
        if re.search(r'await\s', line):
            continue
        if re.search(r'\.then\s*\(', text(ctx.ahead(index, WINDOW_THEN_AFTER_PROMISE), '')):
            continue
        signals.append(
            ctx.line_signal(
                index,
                id='cor-unhandled-promise',
                title='Unhandled Promise',
                category='async',
                reason='Promise without await or .then() - result ignored',
                weight=0.6,
                signal_class='behavioral',
                confidence='medium',
                tags=['correctness', 'async', 'promise'],
                evidence=Evidence(kind='heuristic', pattern='promise without await/then'),
            )
        )
    return signals


def race_conditions(ctx: FileContext) -> list[Signal]:
    """Reassigned ``let`` near async code.

    Low-confidence text heuristic; no control-flow analysis.
    """
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        declared = LET_DECLARATION.search(line)
        if not declared:
            continue
        if 'async' not in text(ctx.around(index, WINDOW_ASYNC_AROUND_LET, WINDOW_ASYNC_AROUND_LET), ''):
            continue
        var_name = declared.group(1)
        rest = text(ctx.ahead(index, WINDOW_LET_REASSIGN))[len(line) :]
        if not re.search(rf'{re.escape(var_name)}\s*=', rest):
            continue
        signals.append(
            ctx.line_signal(
                index,
                id='cor-race-condition',
                title='Potential Race Condition',
                category='async',
                reason='Mutable variable reassigned in async context - race condition risk',
                weight=0.5,
                signal_class='behavioral',
                confidence='low',
                tags=['correctness', 'async', 'race-condition'],
                evidence=Evidence(kind='heuristic', pattern='let in async', details={'variable': var_name}),
            )
        )
    return signals


# ============================================================================
# Maintainability
# ============================================================================

TODO_MARKER = re.compile(r'//\s*(TODO|FIXME|HACK|XXX)\b', re.I)
TICKET_REFERENCE = re.compile(r'#\d+|\[[\w-]+\]|JIRA|ISSUE|TICKET', re.I)
COMMENTED_CODE = re.compile(r'^\s*//\s*(?:const|let|var|function|class|if|for|while|return|import|export)')
MAGIC_NUMBER = re.compile(r'[^a-zA-Z0-9_](?<![\d.])[1-9]\d{2,}(?!\d)')
MAGIC_NUMBER_EXEMPT = re.compile(r'\b(?:port|status|code|error|http|width|height|size|index|length)\b', re.I)
EXPORTED_NAME = re.compile(r'export\s+(?:const|function|class)\s+(\w+)')
DUPLICATE_EXEMPT = re.compile(r'^\s*//|^\s*\*|^\s*import|^\s*export')

MAINTAINABILITY_RULES = (
    Rule(
        id='maint-vague-error',
        pattern=re.compile(r'''throw\s+new\s+Error\s*\(\s*['"][^'"]{0,20}['"]\s*\)'''),
        category='complexity',
        title='Vague Error Message',
        reason='Error message is short - add more context for debugging',
        weight=0.2,
        signal_class='maintainability',
        confidence='medium',
        tags=('maintainability', 'error-message'),
    ),
    Rule(
        id='maint-test-disabled',
        pattern=re.compile(r'\.skip\s*\(|\.only\s*\(|xit\s*\(|xdescribe\s*\('),
        category='side-effect',
        title='Disabled Test',
        reason='Test disabled with .skip/.only - verify this is intentional',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('maintainability', 'testing'),
        when=_is_test_file,
    ),
)

commented_code = count_rule(
    id='maint-commented-code',
    pattern=COMMENTED_CODE,
    category='complexity',
    title='Commented-Out Code',
    reason='{count} lines of commented-out code',
    weight=0.2,
    minimum=4,
    max_lines=5,
    evidence_kind='heuristic',
    signal_class='maintainability',
    confidence='high',
    tags=['maintainability', 'dead-code'],
)


def untracked_todos(ctx: FileContext) -> list[Signal]:
    hits = [
        index + 1
        for index in ctx.focus_indices()
        if TODO_MARKER.search(ctx.lines[index]) and not TICKET_REFERENCE.search(ctx.lines[index])
    ]
    if not hits:
        return []
    return [
        ctx.signal(
            id='maint-todo-no-ticket',
            title='TODO Without Ticket',
            category='complexity',
            reason=f'{len(hits)} TODO/FIXME without ticket reference',
            weight=0.1 * len(hits),
            lines=hits[:5],
            signal_class='maintainability',
            confidence='high',
            tags=['maintainability', 'todo'],
            evidence=Evidence(kind='regex', details={'count': len(hits)}),
        )
    ]


def is_magic_number_line(line: str) -> bool:
    if not MAGIC_NUMBER.search(line) or MAGIC_NUMBER_EXEMPT.search(line):
        return False
    number = re.search(r'\b(\d{3,})\b', line)
    return number is not None and int(number.group(1)) not in MAGIC_NUMBER_ALLOWLIST


def magic_numbers(ctx: FileContext) -> list[Signal]:
    hits = [index + 1 for index in ctx.focus_indices() if is_magic_number_line(ctx.lines[index])]
    if len(hits) <= 2:
        return []
    return [
        ctx.signal(
            id='maint-magic-numbers',
            title='Magic Numbers',
            category='complexity',
            reason=f'{len(hits)} magic numbers - consider named constants',
            weight=0.2,
            lines=hits[:5],
            signal_class='maintainability',
            confidence='medium',
            tags=['maintainability', 'magic-numbers'],
            evidence=Evidence(kind='heuristic', details={'count': len(hits)}),
        )
    ]


def unused_exports(ctx: FileContext) -> list[Signal]:
    """Exports whose name appears exactly once in the whole file."""
    signals = []
    for index in ctx.focus_indices():
        found = EXPORTED_NAME.search(ctx.lines[index])
        if not found:
            continue
        export_name = found.group(1)
        usage_count = len(re.findall(rf'\b{re.escape(export_name)}\b', ctx.content))
        if usage_count != 1:
            continue
        signals.append(
            ctx.line_signal(
                index,
                id='maint-unused-export',
                title=f'Potentially Unused Export: {export_name}',
                category='complexity',
                reason='Export not used within file - verify external usage',
                weight=0.2,
                signal_class='maintainability',
                confidence='low',
                tags=['maintainability', 'dead-code'],
                evidence=Evidence(kind='heuristic', details={'exportName': export_name}),
            )
        )
    return signals


def duplicate_lines(ctx: FileContext) -> list[Signal]:
    """First cluster of a long line repeated at least three times."""
    occurrences: dict[str, list[int]] = {}
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        trimmed = line.strip()
        if len(trimmed) > 30 and not DUPLICATE_EXEMPT.search(line):
            occurrences.setdefault(trimmed, []).append(index + 1)

    for trimmed, line_numbers in occurrences.items():
        if len(line_numbers) >= 3:
            return [
                ctx.signal(
                    id='maint-duplicate-code',
                    title='Duplicate Code Pattern',
                    category='complexity',
                    reason=f'Same code pattern repeated {len(line_numbers)} times',
                    weight=0.3,
                    lines=line_numbers[:3],
                    snippet=trimmed[:100],
                    signal_class='maintainability',
                    confidence='medium',
                    tags=['maintainability', 'duplication'],
                    evidence=Evidence(kind='heuristic', details={'count': len(line_numbers)}),
                )
            ]
    return []


GENERIC = FrameworkLayer(
    name='generic',
    rules=SIDE_EFFECT_RULES + ASYNC_SIGNATURE_RULES + SECURITY_RULES + CORRECTNESS_RULES + MAINTAINABILITY_RULES,
    probes=(
        large_file,
        deep_nesting,
        long_functions,
        high_params,
        async_functions,
        promise_patterns,
        export_changes,
        type_export_changes,
        command_injection,
        unhandled_promises,
        race_conditions,
        untracked_todos,
        magic_numbers,
        unused_exports,
        duplicate_lines,
        commented_code,
    ),
)
