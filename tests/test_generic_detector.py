"""Tests for the generic signal battery and the rule-table machinery."""

import re

from dsense.classify import validate_signal
from dsense.detect.generic import GENERIC, find_functions, leading_spaces
from dsense.detect.layer import Detector
from dsense.detect.rules import FileContext, Rule, count_rule, first_match_rule, scan_rules
from dsense.models import ChangedRange, DetectorOptions


def detect(content, path='src/module.ts', ranges=None, context_lines=5):
    options = DetectorOptions(changed_ranges=ranges, context_lines=context_lines)
    return Detector('generic', GENERIC).detect(content, path, options)


def ids(signals):
    return [s.id for s in signals]


def by_id(signals, signal_id):
    return [s for s in signals if s.id == signal_id]


class TestFileContext:
    """Bounded windows and signal helpers."""

    def setup_method(self):
        self.ctx = FileContext.build('a\nb\nc\nd\ne', 'x.ts')

    def test_lines_split(self):
        assert self.ctx.lines == ['a', 'b', 'c', 'd', 'e']

    def test_around_clipped(self):
        assert self.ctx.around(1, 5, 2) == ['a', 'b', 'c']
        assert self.ctx.around(4, 1, 5) == ['d', 'e']

    def test_ahead_includes_current(self):
        assert self.ctx.ahead(2, 2) == ['c', 'd']

    def test_behind_excludes_current(self):
        assert self.ctx.behind(2, 2) == ['a', 'b']

    def test_following_excludes_current(self):
        assert self.ctx.following(2, 5) == ['d', 'e']

    def test_snippet(self):
        assert self.ctx.snippet(2, 3) == 'b\nc'
        assert self.ctx.snippet(4) == 'd'

    def test_focus_indices_skip_lines_past_end(self):
        """Test changed lines beyond the file end yield no indices."""
        options = DetectorOptions(changed_ranges=[ChangedRange(start_line=2, end_line=9)])
        ctx = FileContext.build('a\nb', 'x.ts', options)
        assert list(ctx.focus_indices()) == [0, 1]


class TestRuleTable:
    """Declarative rules with requires/forbids windows."""

    def test_plain_match(self):
        ctx = FileContext.build('foo()\nbar()', 'x.ts')
        rule = Rule('x-foo', re.compile(r'foo'), 'complexity', 'Foo', 'foo found', 0.2)
        signals = scan_rules(ctx, [rule])
        assert [s.lines for s in signals] == [[1]]
        assert signals[0].evidence.details == {'matchText': 'foo'}

    def test_forbids_in_window(self):
        """Test forbids only looks as far as the after window."""
        content = 'timer = setInterval(f)\nx\nclearInterval(timer)'
        rule = Rule('x-int', re.compile(r'setInterval'), 'async', 'T', 'R', 0.2, forbids=re.compile('clear'), after=3)
        assert scan_rules(FileContext.build(content, 'x.ts'), [rule]) == []
        narrow = Rule('x-int', re.compile(r'setInterval'), 'async', 'T', 'R', 0.2, forbids=re.compile('clear'), after=2)
        assert len(scan_rules(FileContext.build(content, 'x.ts'), [narrow])) == 1

    def test_requires_looks_behind(self):
        content = 'const redis = connect()\nclient.get(key)'
        rule = Rule(
            id='x-cache',
            pattern=re.compile(r'\.get\('),
            category='side-effect',
            title='T',
            reason='R',
            weight=0.2,
            requires=re.compile('redis'),
            before=1,
        )
        assert len(scan_rules(FileContext.build(content, 'x.ts'), [rule])) == 1

    def test_when_gate(self):
        rule = Rule('x-ts', re.compile('foo'), 'complexity', 'T', 'R', 0.2, when=lambda ctx: ctx.path.endswith('.ts'))
        assert scan_rules(FileContext.build('foo', 'a.js'), [rule]) == []
        assert len(scan_rules(FileContext.build('foo', 'a.ts'), [rule])) == 1

    def test_line_major_order(self):
        """Test signals are ordered by line, then by table order."""
        rules = [
            Rule('x-b', re.compile('b'), 'complexity', 'T', 'R', 0.2),
            Rule('x-a', re.compile('a'), 'complexity', 'T', 'R', 0.2),
        ]
        signals = scan_rules(FileContext.build('ab\nab', 'x.ts'), rules)
        assert [(s.id, s.lines[0]) for s in signals] == [('x-b', 1), ('x-a', 1), ('x-b', 2), ('x-a', 2)]

    def test_fixed_snippet(self):
        rule = Rule('x-secret', re.compile('pw'), 'side-effect', 'T', 'R', 0.2, snippet='***')
        assert scan_rules(FileContext.build('pw=1', 'x.ts'), [rule])[0].snippet == '***'

    def test_count_rule(self):
        counter = count_rule(
            id='x-count',
            pattern=re.compile('hit'),
            category='complexity',
            title='T',
            reason='{count} hits',
            per_match=0.1,
            minimum=2,
        )
        assert counter(FileContext.build('hit\nmiss', 'x.ts')) == []
        signals = counter(FileContext.build('hit\nhit\nhit', 'x.ts'))
        assert len(signals) == 1
        assert signals[0].reason == '3 hits'
        assert signals[0].lines == [1, 2, 3]
        assert abs(signals[0].weight - 0.3) < 1e-9

    def test_first_match_rule_one_per_line(self):
        first = first_match_rule(
            id='x-first',
            patterns=((re.compile('alpha'), 'Alpha'), (re.compile('a'), 'A')),
            category='complexity',
            title='T',
            reason='{name} seen',
            weight=0.2,
        )
        signals = first(FileContext.build('alpha', 'x.ts'))
        assert [s.reason for s in signals] == ['Alpha seen']


class TestGenericScenarios:
    """End-to-end behaviour of the generic battery."""

    def test_window_and_fetch(self):
        signals = detect("window.x = 1;\nfetch('/api');\n", path='test.ts')
        global_signals = [s for s in signals if 'global' in s.id]
        fetch_signals = [s for s in signals if 'fetch' in s.id or 'network' in s.id]
        assert any(s.lines == [1] and s.in_changed_range for s in global_signals)
        assert any(s.lines == [2] and s.in_changed_range for s in fetch_signals)

    def test_empty_content(self):
        assert detect('') == []

    def test_deterministic(self):
        content = "async function load() {\n  const r = await fetch('/x');\n  console.log(r);\n}\n"
        first = [s.to_dict() for s in detect(content)]
        second = [s.to_dict() for s in detect(content)]
        assert first == second

    def test_only_focus_lines_scanned(self):
        lines = ['const a = 1;'] * 30
        lines[1] = "fetch('/early');"
        lines[24] = "fetch('/late');"
        signals = detect('\n'.join(lines), ranges=[ChangedRange(start_line=25, end_line=25)], context_lines=2)
        fetches = by_id(signals, 'network-fetch')
        assert [s.lines for s in fetches] == [[25]]
        assert fetches[0].in_changed_range

    def test_context_line_not_changed(self):
        """Test a context line is scanned but not marked changed."""
        lines = ['const a = 1;'] * 30
        lines[23] = "fetch('/near');"
        signals = detect('\n'.join(lines), ranges=[ChangedRange(start_line=25, end_line=25)], context_lines=2)
        fetches = by_id(signals, 'network-fetch')
        assert [s.lines for s in fetches] == [[24]]
        assert not fetches[0].in_changed_range

    def test_range_beyond_end_of_file(self):
        signals = detect("fetch('/x');", ranges=[ChangedRange(start_line=1, end_line=50)])
        assert 'network-fetch' in ids(signals)

    def test_browser_storage(self):
        content = "localStorage.setItem('k', v);\nsessionStorage.getItem('k');\nconst db = indexedDB.open('app');"
        signals = detect(content)
        assert [s.lines for s in by_id(signals, 'storage-local')] == [[1]]
        assert [s.lines for s in by_id(signals, 'storage-session')] == [[2]]
        assert [s.lines for s in by_id(signals, 'storage-indexeddb')] == [[3]]
        assert not {'storage-local', 'storage-session', 'storage-indexeddb'} & set(ids(detect("store.get('k');")))

    def test_timers(self):
        signals = detect('setTimeout(run, 100);\nsetInterval(tick, 100);')
        assert [s.lines for s in by_id(signals, 'timer-timeout')] == [[1]]
        assert [s.lines for s in by_id(signals, 'timer-interval')] == [[2]]
        cleared = detect('clearTimeout(id);\nclearInterval(id);')
        assert by_id(cleared, 'timer-timeout') == []
        assert by_id(cleared, 'timer-interval') == []

    def test_process_access(self):
        content = "const url = process.env.API_URL;\nprocess.exit(1);\nconst { spawn } = require('child_process');"
        signals = detect(content)
        assert by_id(signals, 'process-env')[0].lines == [1]
        exits = by_id(signals, 'process-exit')
        assert exits[0].lines == [2]
        assert exits[0].signal_class == 'behavioral'
        assert exits[0].actions[0].text == 'Verify process termination'
        assert by_id(signals, 'process-child')[0].lines == [3]
        assert by_id(detect('const processed = true;'), 'process-env') == []

    def test_fs_async_and_sync(self):
        signals = detect('fs.readFile(path, cb);\nconst data = readFileSync(path);')
        assert [s.lines for s in by_id(signals, 'fs-operation')] == [[1]]
        assert [s.lines for s in by_id(signals, 'fs-sync')] == [[2]]
        assert by_id(signals, 'fs-sync')[0].signal_class == 'behavioral'

    def test_database_calls(self):
        signals = detect('db.query(sql, params);\nawait prisma.user.findMany();')
        assert [s.lines for s in by_id(signals, 'database-query')] == [[1]]
        assert [s.lines for s in by_id(signals, 'database-orm')] == [[2]]
        plain = detect('items.map(fn);')
        assert by_id(plain, 'database-query') == []
        assert by_id(plain, 'database-orm') == []

    def test_dom_access(self):
        signals = detect("document.querySelector('#app');\nel.innerHTML = html;")
        assert [s.lines for s in by_id(signals, 'dom-manipulation')] == [[1]]
        assert [s.lines for s in by_id(signals, 'dom-innerhtml')] == [[2]]
        assert by_id(detect('el.textContent = html;'), 'dom-innerhtml') == []

    def test_console_output(self):
        signals = by_id(detect("console.warn('slow');"), 'logging-console')
        assert signals[0].signal_class == 'maintainability'
        assert abs(signals[0].weight - 0.1) < 1e-9
        assert by_id(detect("console.debug('x');"), 'logging-console') == []

    def test_axios(self):
        assert by_id(detect("axios.get('/api/users');"), 'network-axios')
        assert by_id(detect('const axiosConfig = {};'), 'network-axios') == []

    def test_websocket(self):
        assert by_id(detect('const ws = new WebSocket(url);'), 'network-websocket')
        assert by_id(detect('const webSocketUrl = url;'), 'network-websocket') == []

    def test_async_functions_aggregate(self):
        """Three async declarations fold into one signal weighted 0.2 per match."""
        content = 'async function a() {}\nasync function b() {}\nconst c = async () => 1;'
        signals = by_id(detect(content), 'async-await')
        assert len(signals) == 1
        assert signals[0].lines == [1, 2, 3]
        assert abs(signals[0].weight - 0.6) < 1e-9
        assert signals[0].reason.startswith('3 async function(s)')
        assert by_id(detect('const asyncValue = 1;'), 'async-await') == []

    def test_promise_pattern_first_match_per_line(self):
        """A line with both Promise.all and .then() reports only .then(), the earlier table entry."""
        content = 'Promise.all(jobs).then(done);\nreturn new Promise(r => r());'
        signals = by_id(detect(content), 'promise-pattern')
        assert [s.lines for s in signals] == [[1], [2]]
        assert signals[0].reason.startswith('.then()')
        assert signals[1].reason.startswith('new Promise')
        assert by_id(detect('const promised = 1;'), 'promise-pattern') == []

    def test_event_handler(self):
        content = "button.addEventListener('click', onClick);\nsocket.on('message', handle);"
        assert [s.lines for s in by_id(detect(content), 'event-handler')] == [[1], [2]]
        assert by_id(detect("socket.emit('message', data);\nemitter.on(handler);"), 'event-handler') == []


class TestComplexity:
    """Size, nesting and function length heuristics."""

    def test_large_file_with_many_changes(self):
        content = '\n'.join(['const a = 1;'] * 600)
        signals = detect(content, ranges=[ChangedRange(start_line=100, end_line=169)])
        large = by_id(signals, 'large-file')
        assert len(large) == 1
        assert large[0].evidence.details['loc'] == 600
        assert large[0].evidence.details['changedLineCount'] == 70

    def test_large_file_with_few_changes(self):
        """Test a large file with under 10% changed lines stays quiet."""
        content = '\n'.join(['const a = 1;'] * 600)
        signals = detect(content, ranges=[ChangedRange(start_line=100, end_line=129)])
        assert by_id(signals, 'large-file') == []

    def test_medium_file(self):
        content = '\n'.join(['const a = 1;'] * 400)
        signals = detect(content, ranges=[ChangedRange(start_line=1, end_line=80)])
        assert by_id(signals, 'large-file')[0].title == 'Medium-Large File'

    def test_deep_nesting_threshold(self):
        assert by_id(detect(' ' * 10 + 'doIt();'), 'deep-nesting')
        assert by_id(detect(' ' * 8 + 'doIt();'), 'deep-nesting') == []

    def test_leading_spaces(self):
        assert leading_spaces('    x') == 4
        assert leading_spaces('x') == 0

    def test_long_function(self):
        body = ['  step();'] * 60
        content = '\n'.join(['function big() {', *body, '}'])
        signals = by_id(detect(content), 'long-function')
        assert len(signals) == 1
        assert signals[0].lines == [1]
        assert signals[0].evidence.details['length'] == 62

    def test_find_functions_skips_short(self):
        content = ['function small() {', '  a();', '}']
        assert find_functions(content) == []

    def test_high_params(self):
        params = ', '.join(f'parameterNumber{i}' for i in range(6))
        signals = by_id(detect(f'function many({params}) {{'), 'high-params')
        assert signals[0].evidence.details['params'] == 6


class TestSecurityAndCorrectness:
    """Security and correctness rules."""

    def test_eval_is_blocker_with_actions(self):
        signals = by_id(detect('const r = eval(code);'), 'sec-eval')
        assert signals[0].severity == 'blocker'
        assert validate_signal(signals[0]).valid

    def test_hardcoded_secret_redacted(self):
        signals = by_id(detect("const apiKey = 'abcd1234efgh';"), 'sec-hardcoded-secret')
        assert signals[0].snippet == '*** REDACTED ***'

    def test_command_injection_tainted(self):
        """Test interpolated shell command is escalated to full weight."""
        signals = by_id(detect('exec(`rm -rf ${dir}`);'), 'sec-command-injection')
        assert signals[0].weight == 1.0
        assert signals[0].evidence.details == {'tainted': True}

    def test_shell_execution_untainted(self):
        signals = by_id(detect("exec('ls');"), 'sec-command-injection')
        assert signals[0].title == 'Shell Execution'

    def test_npm_script_only_in_manifest(self):
        line = '"postinstall": "node setup.js",'
        assert by_id(detect(line, path='package.json'), 'sec-npm-script')
        assert by_id(detect(line, path='config.ts'), 'sec-npm-script') == []

    def test_swallowed_error(self):
        assert by_id(detect('try { run(); } catch (e) {}'), 'cor-swallowed-error')

    def test_interval_without_clear(self):
        assert by_id(detect('setInterval(tick, 1000);'), 'cor-interval-no-clear')
        cleared = 'const t = setInterval(tick, 1000);\nclearInterval(t);'
        assert by_id(detect(cleared), 'cor-interval-no-clear') == []

    def test_infinite_loop_with_break(self):
        assert by_id(detect('while (true) {\n  step();\n}'), 'cor-infinite-loop')
        assert by_id(detect('while (true) {\n  if (done) break;\n}'), 'cor-infinite-loop') == []

    def test_unhandled_promise(self):
        assert by_id(detect("fetch('/x');"), 'cor-unhandled-promise')
        assert by_id(detect("fetch('/x')\n  .then(r => r.json());"), 'cor-unhandled-promise') == []

    def test_race_condition_is_low_confidence(self):
        """Test reassigned let near async code is reported with low confidence."""
        content = 'async function run() {\n  let count = 0;\n  await tick();\n  count = 1;\n}'
        signals = by_id(detect(content), 'cor-race-condition')
        assert signals[0].confidence == 'low'
        assert signals[0].evidence.details == {'variable': 'count'}

    def test_xss_sink(self):
        content = 'el.innerHTML = html;\n<div dangerouslySetInnerHTML={{ __html: body }} />'
        signals = by_id(detect(content), 'sec-xss-sink')
        assert [s.lines for s in signals] == [[1], [2]]
        assert signals[0].weight == 0.9
        assert signals[0].actions[0].text == 'Prevent XSS'
        assert by_id(detect('el.textContent = html;'), 'sec-xss-sink') == []

    def test_weak_crypto_needs_weak_algorithm(self):
        """digest('hex') alone is fine; the line must name md5 or sha1."""
        assert by_id(detect("const h = createHash('sha256').digest('hex');"), 'sec-weak-crypto') == []
        assert by_id(detect("crypto.createHash('md5').update(data);"), 'sec-weak-crypto')
        signals = by_id(detect("createHash('sha1').update(x).digest('hex');"), 'sec-weak-crypto')
        assert len(signals) == 1

    def test_cors_wildcard(self):
        content = "app.use(cors({ origin: '*' }));\nres.setHeader('Access-Control-Allow-Origin', '*');"
        assert [s.lines for s in by_id(detect(content), 'sec-cors-wildcard')] == [[1], [2]]
        restricted = "app.use(cors({ origin: 'https://app.example.com' }));"
        assert by_id(detect(restricted), 'sec-cors-wildcard') == []

    def test_sql_injection(self):
        content = 'db.query(`SELECT * FROM users WHERE id = ${id}`);\ndb.execute(sql + id);'
        signals = by_id(detect(content), 'sec-sql-injection')
        assert [s.lines for s in signals] == [[1], [2]]
        assert signals[0].severity == 'blocker'
        parameterized = "db.query('SELECT * FROM users WHERE id = ?', [id]);"
        assert by_id(detect(parameterized), 'sec-sql-injection') == []

    def test_prototype_pollution(self):
        assert by_id(detect('Object.assign(target, req.body);'), 'sec-prototype-pollution')
        assert by_id(detect('Object.assign({}, defaults);'), 'sec-prototype-pollution') == []

    def test_ssrf(self):
        assert by_id(detect('const res = await fetch(req.query.url);'), 'sec-ssrf')
        assert by_id(detect("const res = await fetch('/api/users');"), 'sec-ssrf') == []

    def test_sensitive_log(self):
        assert by_id(detect("console.log('user token', token);"), 'sec-sensitive-log')
        assert by_id(detect("console.log('loaded', items.length);"), 'sec-sensitive-log') == []
        assert by_id(detect("console.error('bad password');"), 'sec-sensitive-log') == []

    def test_unsafe_deserialize_try_window(self):
        """A try within the five preceding lines suppresses; the parse line itself is not looked at."""
        parse = 'const data = JSON.parse(req.body);'
        assert by_id(detect(parse), 'sec-unsafe-deserialize')
        guarded = '\n'.join(['try {'] + ['step();'] * 4 + [parse])
        assert by_id(detect(guarded), 'sec-unsafe-deserialize') == []
        distant = '\n'.join(['try {'] + ['step();'] * 5 + [parse])
        assert by_id(detect(distant), 'sec-unsafe-deserialize')[0].lines == [7]
        same_line = 'try { const data = JSON.parse(atob(raw)); } catch (e) { report(e); }'
        assert by_id(detect(same_line), 'sec-unsafe-deserialize')

    def test_any_type(self):
        signals = by_id(detect('function f(x: any) {}\nconst y = value as any;'), 'cor-any-type')
        assert [s.lines for s in signals] == [[1], [2]]
        assert signals[0].signal_class == 'maintainability'
        assert by_id(detect('function f(x: anything) {}'), 'cor-any-type') == []

    def test_complex_regex(self):
        """Lookaround or two bounded repetitions make a regex literal complex."""
        assert by_id(detect(r'const strong = /^(?=.*\d)(?=.*[a-z]).+$/;'), 'cor-complex-regex')
        assert by_id(detect(r'const zip = /^\d{5}-\d{4}$/;'), 'cor-complex-regex')
        assert by_id(detect(r'const zip = /^\d{5}$/;'), 'cor-complex-regex') == []


class TestSignatureAndMaintainability:
    """Export and maintainability checks."""

    def test_export_change(self):
        signals = by_id(detect('export function loadUser() {}\nloadUser();'), 'export-change')
        assert signals[0].evidence.details == {'exportName': 'loadUser'}

    def test_type_export_only_in_typescript(self):
        content = 'export interface User {}'
        assert by_id(detect(content, path='a.ts'), 'type-export-change')
        assert by_id(detect(content, path='a.js'), 'type-export-change') == []

    def test_unused_export(self):
        assert by_id(detect('export const helper = 1;'), 'maint-unused-export')

    def test_todo_without_ticket(self):
        assert by_id(detect('// TODO: fix this'), 'maint-todo-no-ticket')
        assert by_id(detect('// TODO(#123): fix this'), 'maint-todo-no-ticket') == []

    def test_commented_code_needs_four_lines(self):
        three = '\n'.join(['// const a = 1;'] * 3)
        four = '\n'.join(['// const a = 1;'] * 4)
        assert by_id(detect(three), 'maint-commented-code') == []
        assert by_id(detect(four), 'maint-commented-code')

    def test_duplicate_lines(self):
        line = 'result = transform(input, options, callback);'
        signals = by_id(detect('\n'.join([line] * 3)), 'maint-duplicate-code')
        assert signals[0].lines == [1, 2, 3]

    def test_disabled_test_only_in_test_files(self):
        line = "it.skip('works', () => {});"
        assert by_id(detect(line, path='a.test.ts'), 'maint-test-disabled')
        assert by_id(detect(line, path='a.ts'), 'maint-test-disabled') == []

    def test_magic_numbers_need_three_lines(self):
        """Two literal-bearing lines stay quiet; the third one reports all of them."""
        lines = ['const timeout = 1500;', 'const retries = 250;', 'const ratio = 7500;']
        assert by_id(detect('\n'.join(lines[:2])), 'maint-magic-numbers') == []
        signals = by_id(detect('\n'.join(lines)), 'maint-magic-numbers')
        assert signals[0].lines == [1, 2, 3]
        assert signals[0].evidence.details == {'count': 3}

    def test_magic_numbers_allowlist_and_exempt_names(self):
        lines = ['const timeout = 1500;', 'const retries = 250;', 'const missing = 404;', 'const width = 1280;']
        assert by_id(detect('\n'.join(lines)), 'maint-magic-numbers') == []

    def test_vague_error(self):
        assert by_id(detect("throw new Error('failed');"), 'maint-vague-error')
        detailed = "throw new Error('Could not load user profile from cache');"
        assert by_id(detect(detailed), 'maint-vague-error') == []
