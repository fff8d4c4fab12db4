"""SSR meta-framework layer: server/client boundary checks plus Next, Nuxt and Astro variants."""

import re

from dsense.detect.layer import FrameworkLayer, Variant, dispatch_variant
from dsense.detect.rules import FileContext, Rule
from dsense.models import ActionRecommendation, Evidence, Signal

USE_CLIENT = re.compile(r'''["']use client["']''')
USE_SERVER = re.compile(r'''["']use server["']''')
NUXT_IMPORT = re.compile(r'''from\s+['"]#app['"]|from\s+['"]nuxt''')
NUXT_DATA_HOOK = re.compile(r'\b(useAsyncData|useFetch|useLazyAsyncData|useLazyFetch)\s*\(')
ASTRO_CLIENT_DIRECTIVE = re.compile(r'client:(load|visible|idle|media|only)')

# (pattern, api name, crashes the server render outright)
BROWSER_APIS = (
    (re.compile(r'\bwindow\b(?!\.)'), 'window', True),
    (re.compile(r'\bwindow\.'), 'window', True),
    (re.compile(r'\bdocument\b(?!\.)'), 'document', True),
    (re.compile(r'\bdocument\.'), 'document', True),
    (re.compile(r'\blocalStorage\b'), 'localStorage', True),
    (re.compile(r'\bsessionStorage\b'), 'sessionStorage', True),
    (re.compile(r'\bnavigator\b'), 'navigator', False),
    (re.compile(r'\blocation\b(?!\s*[:=])'), 'location', False),
    (re.compile(r'\bhistory\b'), 'history', False),
    (re.compile(r'\bself\b'), 'self', False),
    (re.compile(r'\balert\s*\('), 'alert', False),
    (re.compile(r'\bconfirm\s*\('), 'confirm', False),
    (re.compile(r'\bprompt\s*\('), 'prompt', False),
    (re.compile(r'\bIntersectionObserver\b'), 'IntersectionObserver', False),
    (re.compile(r'\bResizeObserver\b'), 'ResizeObserver', False),
    (re.compile(r'\bMutationObserver\b'), 'MutationObserver', False),
    (re.compile(r'\brequestAnimationFrame\b'), 'requestAnimationFrame', False),
    (re.compile(r'\brequestIdleCallback\b'), 'requestIdleCallback', False),
    (re.compile(r'\bgetComputedStyle\b'), 'getComputedStyle', False),
    (re.compile(r'\bmatchMedia\b'), 'matchMedia', False),
    (re.compile(r'\bAudio\b'), 'Audio', False),
    (re.compile(r'\bImage\b'), 'Image', False),
    (re.compile(r'\bBlob\b'), 'Blob', False),
    (re.compile(r'\bFile\b'), 'File', False),
    (re.compile(r'\bFileReader\b'), 'FileReader', False),
    (re.compile(r'\bURL\.createObjectURL\b'), 'URL.createObjectURL', False),
)
GUARDED_ACCESS = re.compile(r'typeof\s+(window|document)|if\s*\([^)]*(?:window|document|typeof)')

SENSITIVE_ENV = (
    re.compile(
        r'process\.env\.(?!NEXT_PUBLIC_|NUXT_PUBLIC_|PUBLIC_|VITE_)\w*(?:KEY|SECRET|TOKEN|PASSWORD|CREDENTIAL|API_KEY|PRIVATE)',
        re.IGNORECASE,
    ),
    re.compile(r'process\.env\.DATABASE', re.IGNORECASE),
    re.compile(r'process\.env\.MONGODB', re.IGNORECASE),
    re.compile(r'process\.env\.REDIS', re.IGNORECASE),
    re.compile(r'process\.env\.AWS_', re.IGNORECASE),
    re.compile(r'process\.env\.STRIPE_SECRET', re.IGNORECASE),
    re.compile(r'process\.env\.GITHUB_SECRET', re.IGNORECASE),
    re.compile(r'process\.env\.JWT_SECRET', re.IGNORECASE),
    re.compile(r'process\.env\.SESSION_SECRET', re.IGNORECASE),
    re.compile(r'process\.env\.ENCRYPTION_KEY', re.IGNORECASE),
)


def is_ssr_file(path: str, content: str) -> bool:
    """True when the file runs (at least partly) during server rendering."""
    if '/app/' in path and '"use client"' not in content:
        return True
    if re.search(r'getServerSideProps|getStaticProps', content):
        return True
    if '/server/' in path or 'defineEventHandler' in content:
        return True
    if '+server' in path or '+page.server' in path:
        return True
    if path.endswith('.astro'):
        return True
    return re.search(r'''['"]use server['"]|isServer|process\.server''', content) is not None


def ssr_variant(path: str, content: str) -> str | None:
    """Classify the meta-framework: next, nuxt, sveltekit, astro or None."""
    if (
        re.search(r'''from\s+['"]next/''', content)
        or '/app/' in path
        or '/pages/' in path
        or re.search(r'getServerSideProps|getStaticProps', content)
    ):
        return 'next'
    if NUXT_IMPORT.search(content) or '.nuxt' in path or re.search(r'defineNuxtConfig|useAsyncData|useFetch', content):
        return 'nuxt'
    kit_route = any(marker in path for marker in ('+page', '+layout', '+server'))
    if kit_route or re.search(r'''from\s+['"]\$app/''', content):
        return 'sveltekit'
    if path.endswith('.astro') or re.search(r'''from\s+['"]astro:''', content):
        return 'astro'
    return None


def browser_apis(ctx: FileContext) -> list[Signal]:
    """Browser-only globals used outside a typeof/if guard in a server-rendered file."""
    if USE_CLIENT.search(ctx.content):
        return []
    framework = ssr_variant(ctx.path, ctx.content) or 'unknown'
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if GUARDED_ACCESS.search(line):
            continue
        for pattern, name, crashes in BROWSER_APIS:
            if not pattern.search(line):
                continue
            signals.append(
                ctx.line_signal(
                    index,
                    id='ssr-browser-api',
                    title='Browser API in Server Context',
                    category='side-effect',
                    reason=f"'{name}' is not available during SSR - will crash on server",
                    weight=0.8 if crashes else 0.5,
                    signal_class='critical' if crashes else 'behavioral',
                    confidence='high',
                    tags=['ssr', 'browser-api', name, framework],
                    evidence=Evidence(kind='regex', pattern=pattern.pattern, details={'api': name}),
                    actions=[
                        ActionRecommendation(
                            type='mitigation_steps',
                            text=f"Guard '{name}' access for SSR",
                            steps=[
                                f"Add check: typeof {name.split('.')[0]} !== 'undefined'",
                                'Use dynamic import with { ssr: false } if needed',
                                'Move to useEffect/onMount for client-only code',
                                "Consider using 'use client' directive (Next.js 13+)",
                            ],
                        )
                    ],
                )
            )
            break
    return signals


def env_leakage(ctx: FileContext) -> list[Signal]:
    """Secret-looking env vars referenced from code that may ship to the client."""
    client_file = (
        '"use client"' in ctx.content
        or '/components/' in ctx.path
        or ('/app/' in ctx.path and '/api/' not in ctx.path)
    )
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        pattern = next((p for p in SENSITIVE_ENV if p.search(line)), None)
        if pattern is None:
            continue
        found = re.search(r'process\.env\.(\w+)', line)
        env_var = found.group(1) if found else 'UNKNOWN'
        signals.append(
            ctx.line_signal(
                index,
                id='ssr-env-leakage',
                title='Sensitive Env Var Exposure',
                category='side-effect',
                reason=f'{env_var} may be exposed to client bundle - use server-only imports',
                weight=0.9 if client_file else 0.5,
                signal_class='critical',
                confidence='high' if client_file else 'medium',
                tags=['ssr', 'security', 'env', 'secrets'],
                evidence=Evidence(kind='regex', pattern=pattern.pattern, details={'envVar': env_var}),
                actions=[
                    ActionRecommendation(
                        type='review_request',
                        text='Security review required for env var usage',
                        reviewers=['@security-team'],
                    ),
                    ActionRecommendation(
                        type='mitigation_steps',
                        text='Secure environment variable handling',
                        steps=[
                            'Move to server-only module (server-only package)',
                            'Use Next.js: import "server-only"',
                            'Use API route to access secret server-side',
                            'Use NEXT_PUBLIC_ prefix only for truly public vars',
                        ],
                    ),
                ],
            )
        )
    return signals


HYDRATION_RULES = (
    Rule(
        id='ssr-hydration-date',
        pattern=re.compile(r'new\s+Date\s*\(\)|Date\.now\(\)'),
        category='side-effect',
        title='Date Hydration Mismatch',
        reason='Date() returns different values on server vs client - causes hydration mismatch',
        weight=0.6,
        signal_class='behavioral',
        confidence='medium',
        tags=('ssr', 'hydration', 'date'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Fix date hydration mismatch',
                steps=[
                    'Pass date as prop from server',
                    'Use suppressHydrationWarning for intentional differences',
                    'Initialize date in useEffect/onMount',
                ],
            ),
        ),
    ),
    Rule(
        id='ssr-hydration-random',
        pattern=re.compile(r'Math\.random\s*\(\)'),
        category='side-effect',
        title='Random Value Hydration Mismatch',
        reason='Math.random() produces different values on server vs client',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('ssr', 'hydration', 'random'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Fix random hydration mismatch',
                steps=[
                    'Use seeded random number generator',
                    'Generate random values on server and pass as props',
                    'Generate in useEffect/onMount if only needed client-side',
                ],
            ),
        ),
    ),
    Rule(
        id='ssr-hydration-uuid',
        pattern=re.compile(r'uuid\s*\(\)|crypto\.randomUUID\s*\(\)|nanoid\s*\(\)'),
        category='side-effect',
        title='UUID Hydration Mismatch',
        reason='UUID generation differs between server and client',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('ssr', 'hydration', 'uuid'),
    ),
    Rule(
        id='ssr-conditional-render',
        pattern=re.compile(r'isClient|isBrowser|typeof window'),
        category='side-effect',
        title='Client-Only Conditional Render',
        reason='Conditional rendering based on client state may cause hydration issues',
        weight=0.4,
        signal_class='behavioral',
        confidence='medium',
        tags=('ssr', 'hydration', 'conditional'),
        requires=re.compile(r'\{'),
    ),
)


def use_client_position(ctx: FileContext) -> list[Signal]:
    return [
        ctx.line_signal(
            index,
            id='next-use-client-position',
            title='use client Not First',
            category='side-effect',
            reason="'use client' must be at the top of the file",
            weight=0.7,
            signal_class='behavioral',
            confidence='high',
            tags=['next', 'app-router', 'use-client'],
            evidence=Evidence(kind='regex', pattern='use client'),
            actions=[
                ActionRecommendation(
                    type='mitigation_steps',
                    text="Move 'use client' to line 1",
                    steps=['Place the directive before any import'],
                )
            ],
        )
        for index in ctx.focus_indices()
        if index > 0 and USE_CLIENT.search(ctx.lines[index])
    ]


NEXT_RULES = (
    Rule(
        id='next-server-action',
        pattern=USE_SERVER,
        category='async',
        title='Server Action',
        reason='Server Action - verify input validation and error handling',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'server-action', 'security'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Server Action best practices',
                steps=[
                    'Validate all inputs with zod or similar',
                    'Check authentication/authorization',
                    'Handle errors with try/catch',
                    'Return typed responses',
                ],
            ),
        ),
    ),
    Rule(
        id='next-generate-static-params',
        pattern=re.compile(r'export\s+(?:async\s+)?function\s+generateStaticParams'),
        category='async',
        title='Static Params Generation',
        reason='generateStaticParams affects build time and ISR behavior',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'static-generation', 'build'),
    ),
    Rule(
        id='next-metadata',
        pattern=re.compile(r'export\s+(?:const|async\s+function)\s+(?:metadata|generateMetadata)'),
        category='signature',
        title='Metadata Generation',
        reason='Metadata affects SEO and social sharing',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'metadata', 'seo'),
    ),
    Rule(
        id='next-dynamic-no-ssr',
        pattern=re.compile(r'dynamic\s*\([^)]+ssr\s*:\s*false'),
        category='async',
        title='Client-Only Dynamic Import',
        reason='Component loads only on client - verify loading state',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'dynamic-import', 'client-only'),
    ),
    Rule(
        id='next-route-config',
        pattern=re.compile(r'export\s+const\s+(dynamic|revalidate|fetchCache|runtime|preferredRegion)\s*='),
        category='signature',
        title='Route Segment Config',
        reason='Route configuration affects caching and runtime behavior',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('next', 'route-config', 'caching'),
    ),
)


def _imports_nuxt(ctx: FileContext) -> bool:
    return NUXT_IMPORT.search(ctx.content) is not None


NUXT_RULES = (
    Rule(
        id='nuxt-use-state',
        pattern=re.compile(r'\buseState\s*\('),
        category='side-effect',
        title='Nuxt useState',
        reason='Nuxt useState - state shared between server and client',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('nuxt', 'state', 'ssr'),
        when=_imports_nuxt,
    ),
    Rule(
        id='nuxt-plugin',
        pattern=re.compile(r'defineNuxtPlugin'),
        category='side-effect',
        title='Nuxt Plugin',
        reason='Nuxt plugin - runs on every request, verify SSR compatibility',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('nuxt', 'plugin', 'ssr'),
    ),
    Rule(
        id='nuxt-middleware',
        pattern=re.compile(r'defineNuxtRouteMiddleware'),
        category='side-effect',
        title='Nuxt Route Middleware',
        reason='Route middleware - runs on navigation, verify auth logic',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('nuxt', 'middleware', 'routing'),
    ),
    Rule(
        id='nuxt-server-handler',
        pattern=re.compile(r'defineEventHandler'),
        category='async',
        title='Nuxt Server Handler',
        reason='Server handler - verify input validation and error handling',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('nuxt', 'server', 'api'),
    ),
    Rule(
        id='nuxt-client-check',
        pattern=re.compile(r'process\.client'),
        category='side-effect',
        title='Nuxt client Check',
        reason='Conditional client-side code - verify both branches',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('nuxt', 'ssr', 'client'),
    ),
    Rule(
        id='nuxt-server-check',
        pattern=re.compile(r'process\.server'),
        category='side-effect',
        title='Nuxt server Check',
        reason='Conditional server-side code - verify both branches',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('nuxt', 'ssr', 'server'),
        forbids=re.compile(r'process\.client'),
    ),
)


def nuxt_data_fetching(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        found = NUXT_DATA_HOOK.search(ctx.lines[index])
        if found is None:
            continue
        hook = found.group(1)
        signals.append(
            ctx.line_signal(
                index,
                id='nuxt-data-fetching',
                title=f'Nuxt {hook}',
                category='async',
                reason=f'{hook} - verify error handling and key uniqueness',
                weight=0.4,
                signal_class='behavioral',
                confidence='high',
                tags=['nuxt', 'data-fetching', hook.lower()],
                evidence=Evidence(kind='regex', pattern=hook),
            )
        )
    return signals


def _is_astro_file(ctx: FileContext) -> bool:
    return ctx.path.endswith('.astro')


ASTRO_RULES = (
    Rule(
        id='astro-glob',
        pattern=re.compile(r'Astro\.glob\s*\('),
        category='async',
        title='Astro.glob Import',
        reason='Astro.glob imports multiple files - verify performance',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('astro', 'import', 'glob'),
        when=_is_astro_file,
    ),
    Rule(
        id='astro-content-collection',
        pattern=re.compile(r'getCollection|getEntry'),
        category='async',
        title='Content Collection Access',
        reason='Content collection query - verify type safety and filters',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('astro', 'content', 'collections'),
        when=_is_astro_file,
    ),
    Rule(
        id='astro-props',
        pattern=re.compile(r'Astro\.props'),
        category='signature',
        title='Astro Props Access',
        reason='Component props - verify type definitions',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('astro', 'props', 'component'),
        when=_is_astro_file,
    ),
    Rule(
        id='astro-redirect',
        pattern=re.compile(r'Astro\.redirect\s*\('),
        category='side-effect',
        title='Astro redirect',
        reason='Astro redirect - verify destination and conditions',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('astro', 'redirect', 'routing'),
        when=_is_astro_file,
    ),
    Rule(
        id='astro-rewrite',
        pattern=re.compile(r'Astro\.rewrite\s*\('),
        category='side-effect',
        title='Astro rewrite',
        reason='Astro rewrite - verify destination and conditions',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('astro', 'rewrite', 'routing'),
        forbids=re.compile(r'redirect'),
        when=_is_astro_file,
    ),
)


def astro_client_directives(ctx: FileContext) -> list[Signal]:
    if not _is_astro_file(ctx):
        return []
    signals = []
    for index in ctx.focus_indices():
        found = ASTRO_CLIENT_DIRECTIVE.search(ctx.lines[index])
        if found is None:
            continue
        directive = found.group(1)
        signals.append(
            ctx.line_signal(
                index,
                id='astro-client-directive',
                title=f'Client Directive: {directive}',
                category='async',
                reason=f'Component hydrates with client:{directive} - verify bundle size impact',
                weight=0.4 if directive == 'load' else 0.2,
                signal_class='behavioral',
                confidence='high',
                tags=['astro', 'hydration', f'client-{directive}'],
                evidence=Evidence(kind='regex', pattern=f'client:{directive}'),
            )
        )
    return signals


SSR_VARIANTS = {
    'next': Variant(rules=NEXT_RULES, probes=(use_client_position,)),
    'nuxt': Variant(rules=NUXT_RULES, probes=(nuxt_data_fetching,)),
    'astro': Variant(rules=ASTRO_RULES, probes=(astro_client_directives,)),
}

SSR = FrameworkLayer(
    name='ssr',
    applies=is_ssr_file,
    rules=HYDRATION_RULES,
    probes=(browser_apis, env_leakage, dispatch_variant(ssr_variant, SSR_VARIANTS)),
)
