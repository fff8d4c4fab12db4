"""Node.js layer: blocking I/O, process lifecycle and server-side data access."""

import re

from dsense.detect.layer import FrameworkLayer
from dsense.detect.rules import FileContext, Rule, count_rule
from dsense.models import ActionRecommendation, Evidence, Signal

NODE_PATH_MARKERS = ('/server/', '/api/', '/backend/')
NODE_BUILTINS = (
    'fs',
    'path',
    'http',
    'https',
    'child_process',
    'crypto',
    'stream',
    'net',
    'os',
    'cluster',
    'worker_threads',
)
NODE_BUILTIN_IMPORT = re.compile(
    r'''require\s*\(\s*['"](?:{mods})['"]\)|from\s+['"](?:{mods})['"]'''.format(mods='|'.join(NODE_BUILTINS))
)

ROUTE_CALL = re.compile(
    r'''\.(get|post|put|patch|delete)\s*\(\s*['"]|router\.(get|post|put|patch|delete)|app\.(get|post|put|patch|delete)'''
)
AUTH_HINT = re.compile(r'auth|session|jwt|passport|cookie', re.IGNORECASE)

MIDDLEWARE_CALL = re.compile(r'app\.use\s*\(|router\.use\s*\(')

REVIEW_ERROR_HANDLING = ActionRecommendation(
    type='review_request',
    text='Review error handling logic',
    reviewers=['@backend-team'],
)

ENV_HEAVY_THRESHOLD = 5


def is_node_file(path: str, content: str) -> bool:
    """True for server/api/backend paths or files importing a Node builtin."""
    if any(marker in path for marker in NODE_PATH_MARKERS):
        return True
    return NODE_BUILTIN_IMPORT.search(content) is not None


# (call, description)
SYNC_OPERATIONS = (
    ('readFileSync', 'Sync file read'),
    ('writeFileSync', 'Sync file write'),
    ('existsSync', 'Sync exists check'),
    ('execSync', 'Sync exec (blocking)'),
    ('spawnSync', 'Sync spawn (blocking)'),
    ('readdirSync', 'Sync directory read'),
    ('statSync', 'Sync stat'),
    ('mkdirSync', 'Sync mkdir'),
    ('unlinkSync', 'Sync unlink'),
    ('copyFileSync', 'Sync file copy'),
)

# (event, is an error handler)
PROCESS_EVENTS = (
    ('exit', False),
    ('uncaughtException', True),
    ('unhandledRejection', True),
    ('SIGINT', False),
    ('SIGTERM', False),
    ('beforeExit', False),
)


def _sync_rule(name: str, description: str) -> Rule:
    return Rule(
        id='node-sync-op',
        pattern=re.compile(name),
        category='side-effect',
        title='Synchronous I/O Operation',
        reason=f'{description} blocks event loop - consider async alternative',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('node', 'sync', 'blocking', 'performance'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text=f'Replace {name} with async version',
                steps=[
                    f"Use {name.replace('Sync', '')} with await",
                    'Use fs/promises module for cleaner async code',
                    'Consider if sync operation is acceptable at startup only',
                ],
            ),
        ),
        meta={'operation': name},
    )


def _process_event_rule(event: str, error_handler: bool) -> Rule:
    return Rule(
        id=f'node-process-{event.lower()}',
        pattern=re.compile(re.escape(event)),
        category='async',
        title=f'Process {event} Handler',
        reason=f"Process {event} handler - {'critical error handling' if error_handler else 'verify cleanup logic'}",
        weight=0.6 if error_handler else 0.4,
        signal_class='critical' if error_handler else 'behavioral',
        confidence='high',
        tags=('node', 'process', 'events', event.lower()),
        actions=(REVIEW_ERROR_HANDLING,) if error_handler else (),
        requires=re.compile(r'process\.on'),
        meta={'event': event},
    )


NODE_RULES = (
    tuple(_sync_rule(name, description) for name, description in SYNC_OPERATIONS)
    + tuple(_process_event_rule(event, error_handler) for event, error_handler in PROCESS_EVENTS)
    + (
        Rule(
            id='node-worker',
            pattern=re.compile(r'Worker\s*\(|workerData|parentPort'),
            category='async',
            title='Worker Thread',
            reason='Worker thread usage - verify message passing and error handling',
            weight=0.5,
            signal_class='behavioral',
            confidence='high',
            tags=('node', 'workers', 'concurrency'),
        ),
        Rule(
            id='node-cluster',
            pattern=re.compile(r'cluster\.fork|cluster\.isMaster|cluster\.isPrimary'),
            category='async',
            title='Cluster Usage',
            reason='Cluster usage - verify worker management and IPC',
            weight=0.6,
            signal_class='behavioral',
            confidence='high',
            tags=('node', 'cluster', 'scaling'),
        ),
    )
)

SERVER_RULES = (
    Rule(
        id='node-auth-middleware',
        pattern=MIDDLEWARE_CALL,
        category='side-effect',
        title='Auth Middleware',
        reason='Authentication middleware change - verify security implications',
        weight=0.7,
        signal_class='critical',
        confidence='high',
        tags=('node', 'middleware', 'auth', 'security'),
        actions=(
            ActionRecommendation(
                type='review_request',
                text='Security review required for auth middleware change',
                reviewers=['@security-team'],
            ),
            ActionRecommendation(type='test_command', text='Run auth tests', command='npm test -- auth'),
        ),
        requires=AUTH_HINT,
    ),
    Rule(
        id='node-middleware',
        pattern=MIDDLEWARE_CALL,
        category='side-effect',
        title='Middleware Registration',
        reason='Middleware registration - verify order and side effects',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('node', 'middleware'),
        forbids=AUTH_HINT,
    ),
    Rule(
        id='node-database-query',
        pattern=re.compile(r'''\.(query|execute|raw)\s*\(\s*[`'"]|(?i:SELECT\s+|INSERT\s+|UPDATE\s+|DELETE\s+)'''),
        category='side-effect',
        title='Database Query',
        reason='Database query - verify SQL injection prevention and transaction handling',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('node', 'database', 'sql', 'security'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Verify database query safety',
                steps=[
                    'Use parameterized queries to prevent SQL injection',
                    'Verify transaction handling for multi-step operations',
                    'Add appropriate indexes for query performance',
                ],
            ),
        ),
    ),
    Rule(
        id='node-orm',
        pattern=re.compile(r'\.(findOne|findMany|create|update|delete|save|findById|findByPk)\s*\('),
        category='side-effect',
        title='ORM Operation',
        reason='ORM operation - verify N+1 queries and eager loading',
        weight=0.4,
        signal_class='behavioral',
        confidence='medium',
        tags=('node', 'database', 'orm'),
    ),
    Rule(
        id='node-cache',
        pattern=re.compile(r'\.(get|set|del|hget|hset|lpush|rpush|zadd)\s*\('),
        category='side-effect',
        title='Cache Operation',
        reason='Cache operation - verify TTL and invalidation strategy',
        weight=0.3,
        signal_class='behavioral',
        confidence='medium',
        tags=('node', 'cache', 'redis'),
        requires=re.compile(r'redis|cache', re.IGNORECASE),
    ),
    Rule(
        id='node-queue',
        pattern=re.compile(r'\.(publish|subscribe|send|receive|ack|nack)\s*\('),
        category='async',
        title='Message Queue Operation',
        reason='Message queue operation - verify message handling and acknowledgment',
        weight=0.5,
        signal_class='behavioral',
        confidence='medium',
        tags=('node', 'queue', 'messaging', 'async'),
    ),
)

streams = count_rule(
    id='node-stream',
    pattern=re.compile(r'\.pipe\s*\(|createReadStream|createWriteStream'),
    category='async',
    title='Stream Operations',
    reason='{count} stream operation(s) - verify error handling and backpressure',
    weight=0.4,
    signal_class='behavioral',
    confidence='high',
    tags=['node', 'streams', 'async'],
)

env_heavy = count_rule(
    id='node-env-heavy',
    pattern=re.compile(r'process\.env\.\w+'),
    category='side-effect',
    title='Heavy Environment Usage',
    reason='{count} environment variable accesses - consider centralized config',
    weight=0.3,
    minimum=ENV_HEAVY_THRESHOLD + 1,
    max_lines=5,
    signal_class='maintainability',
    confidence='high',
    tags=['node', 'config', 'environment'],
)


def route_handlers(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if not ROUTE_CALL.search(line):
            continue
        verb = re.search(r'(get|post|put|patch|delete)', line, re.IGNORECASE)
        method = verb.group(1).upper() if verb else 'HTTP'
        signals.append(
            ctx.line_signal(
                index,
                id='node-route',
                title=f'{method} Route Handler',
                category='signature',
                reason='API route handler - verify authentication and validation',
                weight=0.2,
                signal_class='behavioral',
                confidence='high',
                tags=['node', 'api', 'route', method.lower()],
                evidence=Evidence(kind='regex', details={'method': method}),
            )
        )
    return signals


NODE = FrameworkLayer(
    name='node',
    applies=is_node_file,
    rules=NODE_RULES + SERVER_RULES,
    probes=(streams, env_heavy, route_handlers),
)
