"""Desktop runtime layer: Electron and Tauri IPC, security flags and native APIs."""

import re

from dsense.detect.layer import FrameworkLayer, Variant, dispatch_variant
from dsense.detect.rules import FileContext, Probe, Rule
from dsense.models import ActionRecommendation, Evidence, Signal

ELECTRON_IMPORT = re.compile(r'''from\s+['"]electron['"]|require\s*\(\s*['"]electron['"]''')
TAURI_IMPORT = re.compile(r'''from\s+['"]@tauri-apps/api['"]|tauri::''')

SECURITY_REVIEW = ActionRecommendation(
    type='review_request',
    text='Security review required',
    reviewers=['@security-team'],
)

# (pattern, api name, security sensitive)
ELECTRON_APIS = (
    (re.compile(r'app\.(quit|exit|relaunch)'), 'App Lifecycle', True),
    (re.compile(r'app\.setAsDefaultProtocolClient'), 'Protocol Handler', True),
    (re.compile(r'autoUpdater'), 'Auto Updater', True),
    (re.compile(r'powerMonitor'), 'Power Monitor', False),
    (re.compile(r'powerSaveBlocker'), 'Power Save Blocker', False),
    (re.compile(r'screen\.'), 'Screen API', False),
    (re.compile(r'globalShortcut'), 'Global Shortcut', False),
    (re.compile(r'clipboard\.'), 'Clipboard', False),
    (re.compile(r'nativeImage'), 'Native Image', False),
    (re.compile(r'nativeTheme'), 'Native Theme', False),
    (re.compile(r'systemPreferences'), 'System Preferences', False),
    (re.compile(r'desktopCapturer'), 'Desktop Capturer', True),
    (re.compile(r'crashReporter'), 'Crash Reporter', False),
    (re.compile(r'protocol\.register'), 'Custom Protocol', True),
    (re.compile(r'session\.'), 'Session', True),
    (re.compile(r'webContents\.'), 'WebContents', True),
    (re.compile(r'Notification'), 'Notification', False),
    (re.compile(r'Menu\.'), 'Menu', False),
    (re.compile(r'Tray'), 'Tray', False),
    (re.compile(r'dialog\.'), 'Dialog', False),
    (re.compile(r'TouchBar'), 'TouchBar', False),
)


def _tauri_module(name: str) -> re.Pattern:
    return re.compile(rf'''from\s+['"]@tauri-apps/api/{name}['"]''')


# (pattern, api name, needs an allowlist entry)
TAURI_APIS = (
    (_tauri_module('fs'), 'File System', True),
    (_tauri_module('path'), 'Path', False),
    (_tauri_module('shell'), 'Shell', True),
    (_tauri_module('dialog'), 'Dialog', False),
    (_tauri_module('notification'), 'Notification', False),
    (_tauri_module('clipboard'), 'Clipboard', False),
    (_tauri_module('globalShortcut'), 'Global Shortcut', False),
    (_tauri_module('http'), 'HTTP', True),
    (_tauri_module('os'), 'OS', False),
    (_tauri_module('process'), 'Process', True),
    (_tauri_module('updater'), 'Updater', True),
    (re.compile(r'tauri-plugin-store'), 'Store Plugin', False),
    (re.compile(r'tauri-plugin-sql'), 'SQL Plugin', True),
)


def desktop_variant(path: str, content: str) -> str | None:
    """Classify the desktop runtime: 'electron', 'tauri' or None."""
    if ELECTRON_IMPORT.search(content) or any(marker in path for marker in ('electron', '/main/', '/renderer/')):
        return 'electron'
    if TAURI_IMPORT.search(content) or 'tauri' in path or path.endswith('.rs'):
        return 'tauri'
    return None


def is_desktop_file(path: str, content: str) -> bool:
    return desktop_variant(path, content) is not None


def _slug(name: str) -> str:
    return re.sub(r'\s+', '-', name.lower())


def _api_table(runtime: str, table, sensitive_reason: str, plain_reason: str, action_text: str | None = None) -> Probe:
    """First-match probe over an (pattern, name, sensitive) API table."""

    def probe(ctx: FileContext) -> list[Signal]:
        signals = []
        for index in ctx.focus_indices():
            line = ctx.lines[index]
            for pattern, name, sensitive in table:
                if not pattern.search(line):
                    continue
                actions = None
                if sensitive and action_text:
                    actions = [
                        ActionRecommendation(
                            type='mitigation_steps',
                            text=action_text.format(name=name),
                            steps=[
                                'Add to tauri.conf.json allowlist',
                                'Use minimal required permissions',
                                'Validate all user inputs',
                            ],
                        )
                    ]
                signals.append(
                    ctx.line_signal(
                        index,
                        id=f'{runtime}-{_slug(name)}',
                        title=f'{runtime.capitalize()} {name}',
                        category='side-effect',
                        reason=(sensitive_reason if sensitive else plain_reason).format(name=name),
                        weight=0.5 if sensitive else 0.2,
                        signal_class='behavioral' if sensitive else 'maintainability',
                        confidence='high',
                        tags=[runtime, 'api', _slug(name)],
                        evidence=Evidence(kind='regex', pattern=pattern.pattern, details={'api': name}),
                        actions=actions,
                    )
                )
                break
        return signals

    return probe


def _quoted_arg(call: str, line: str) -> str | None:
    found = re.search(call + r'''\s*\(\s*['"]([^'"]+)['"]''', line)
    return found.group(1) if found else None


def electron_ipc(ctx: FileContext) -> list[Signal]:
    """ipcMain handlers, ipcRenderer sends and contextBridge exposures."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]

        found = re.search(r'ipcMain\.(handle|on|once)\s*\(', line)
        if found:
            method = found.group(1)
            channel = _quoted_arg(r'ipcMain\.\w+', line)
            signals.append(
                ctx.line_signal(
                    index,
                    id='electron-ipc-main',
                    title=f"IPC Main Handler: {channel or 'channel'}",
                    category='signature',
                    reason='IPC handler in main process - verify input validation and security',
                    weight=0.5,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['electron', 'ipc', 'main', method],
                    evidence=Evidence(kind='regex', pattern='ipcMain', details={'channel': channel, 'method': method}),
                    actions=[
                        ActionRecommendation(
                            type='mitigation_steps',
                            text='Secure IPC handler',
                            steps=[
                                'Validate all incoming data from renderer',
                                'Use invoke/handle pattern for type-safe responses',
                                'Consider using contextBridge for preload isolation',
                                'Never trust renderer-provided data',
                            ],
                        )
                    ],
                )
            )

        found = re.search(r'ipcRenderer\.(send|invoke|sendSync)\s*\(', line)
        if found:
            method = found.group(1)
            channel = _quoted_arg(r'ipcRenderer\.\w+', line)
            details = {'channel': channel, 'method': method}
            if method == 'sendSync':
                signal = ctx.line_signal(
                    index,
                    id='electron-ipc-sync',
                    title='Sync IPC (Blocks Renderer)',
                    category='side-effect',
                    reason='sendSync blocks renderer process - use invoke instead',
                    weight=0.7,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['electron', 'ipc', 'renderer', method],
                    evidence=Evidence(kind='regex', pattern='ipcRenderer', details=details),
                    actions=[
                        ActionRecommendation(
                            type='mitigation_steps',
                            text='Replace sendSync with invoke',
                            steps=[
                                'Use ipcRenderer.invoke for async IPC',
                                'Use ipcMain.handle in main process',
                                'sendSync blocks the renderer thread',
                            ],
                        )
                    ],
                )
            else:
                signal = ctx.line_signal(
                    index,
                    id='electron-ipc-renderer',
                    title=f"IPC Send: {channel or 'channel'}",
                    category='side-effect',
                    reason='IPC message to main process',
                    weight=0.3,
                    signal_class='maintainability',
                    confidence='high',
                    tags=['electron', 'ipc', 'renderer', method],
                    evidence=Evidence(kind='regex', pattern='ipcRenderer', details=details),
                )
            signals.append(signal)

        if re.search(r'contextBridge\.exposeInMainWorld\s*\(', line):
            api = _quoted_arg('exposeInMainWorld', line)
            signals.append(
                ctx.line_signal(
                    index,
                    id='electron-context-bridge',
                    title=f"Context Bridge: {api or 'api'}",
                    category='signature',
                    reason='Exposing API to renderer - verify only safe methods are exposed',
                    weight=0.6,
                    signal_class='critical',
                    confidence='high',
                    tags=['electron', 'security', 'preload', 'context-bridge'],
                    evidence=Evidence(kind='regex', pattern='contextBridge', details={'api': api}),
                    actions=[
                        ActionRecommendation(
                            type='review_request', text='Security review for exposed API', reviewers=['@security-team']
                        ),
                        ActionRecommendation(
                            type='mitigation_steps',
                            text='Secure context bridge',
                            steps=[
                                'Only expose necessary functions',
                                'Validate all arguments from renderer',
                                'Never expose Node.js APIs directly',
                                'Use narrowly-scoped channel names',
                            ],
                        ),
                    ],
                )
            )
    return signals


ELECTRON_SECURITY_RULES = (
    Rule(
        id='electron-node-integration',
        pattern=re.compile(r'nodeIntegration\s*:\s*true'),
        category='side-effect',
        title='Node Integration Enabled',
        reason='nodeIntegration: true is a security risk - use preload scripts instead',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('electron', 'security', 'node-integration'),
        actions=(
            SECURITY_REVIEW,
            ActionRecommendation(
                type='mitigation_steps',
                text='Disable node integration',
                steps=[
                    'Set nodeIntegration: false',
                    'Set contextIsolation: true',
                    'Use preload script with contextBridge',
                    'Expose only necessary APIs',
                ],
            ),
        ),
    ),
    Rule(
        id='electron-context-isolation-disabled',
        pattern=re.compile(r'contextIsolation\s*:\s*false'),
        category='side-effect',
        title='Context Isolation Disabled',
        reason='contextIsolation: false is a security risk - renderer can access Node.js',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('electron', 'security', 'context-isolation'),
        actions=(SECURITY_REVIEW,),
    ),
    Rule(
        id='electron-web-security-disabled',
        pattern=re.compile(r'webSecurity\s*:\s*false'),
        category='side-effect',
        title='Web Security Disabled',
        reason='webSecurity: false disables same-origin policy - major security risk',
        weight=0.9,
        signal_class='critical',
        confidence='high',
        tags=('electron', 'security', 'web-security'),
        actions=(SECURITY_REVIEW,),
    ),
    Rule(
        id='electron-insecure-content',
        pattern=re.compile(r'allowRunningInsecureContent\s*:\s*true'),
        category='side-effect',
        title='Insecure Content Allowed',
        reason='Allowing insecure content is a security risk',
        weight=0.8,
        signal_class='critical',
        confidence='high',
        tags=('electron', 'security', 'insecure-content'),
        actions=(SECURITY_REVIEW,),
    ),
    Rule(
        id='electron-remote-module',
        pattern=re.compile(r'enableRemoteModule\s*:\s*true|@electron/remote'),
        category='side-effect',
        title='Remote Module Usage',
        reason='Remote module is deprecated and insecure - use IPC instead',
        weight=0.7,
        signal_class='critical',
        confidence='high',
        tags=('electron', 'security', 'remote', 'deprecated'),
        actions=(SECURITY_REVIEW,),
    ),
    Rule(
        id='electron-shell-open',
        pattern=re.compile(r'shell\.openExternal\s*\('),
        category='side-effect',
        title='Shell openExternal',
        reason='Opening external URLs - validate URL to prevent code execution',
        weight=0.6,
        signal_class='behavioral',
        confidence='high',
        tags=('electron', 'security', 'shell'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Validate external URLs',
                steps=[
                    'Validate URL is http/https only',
                    'Do not open file:// URLs from user input',
                    'Consider allowlisting domains',
                ],
            ),
        ),
    ),
)

electron_apis = _api_table(
    'electron',
    ELECTRON_APIS,
    '{name} API - security sensitive, verify usage',
    '{name} API - verify platform behavior',
)

TAURI_RULES = (
    Rule(
        id='tauri-command',
        pattern=re.compile(r'#\[tauri::command\]'),
        category='signature',
        title='Tauri Command',
        reason='Tauri command exposed to frontend - validate all inputs',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('tauri', 'command', 'rust', 'ipc'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Secure Tauri command',
                steps=[
                    'Validate all input parameters',
                    'Use Result<T, E> for error handling',
                    'Consider using tauri-plugin-store for persistence',
                    'Add command to tauri.conf.json allowlist',
                ],
            ),
        ),
    ),
)


def tauri_ipc(ctx: FileContext) -> list[Signal]:
    """invoke() calls and listen/emit/once event wiring."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]

        if re.search(r'''invoke\s*\(\s*['"]''', line):
            command = _quoted_arg('invoke', line)
            signals.append(
                ctx.line_signal(
                    index,
                    id='tauri-invoke',
                    title=f"Tauri Invoke: {command or 'command'}",
                    category='async',
                    reason='Invoking Tauri command - verify error handling',
                    weight=0.3,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['tauri', 'invoke', 'ipc'],
                    evidence=Evidence(kind='regex', pattern='invoke', details={'command': command}),
                )
            )

        found = re.search(r'''\b(listen|emit|once)\s*\(\s*['"]''', line)
        if found:
            method = found.group(1)
            event = _quoted_arg(r'\b(?:listen|emit|once)', line)
            listening = method == 'listen'
            signals.append(
                ctx.line_signal(
                    index,
                    id=f'tauri-event-{method}',
                    title=f"Tauri {method}: {event or 'event'}",
                    category='async' if listening else 'side-effect',
                    reason=(
                        'Event listener - ensure cleanup with unlisten'
                        if listening
                        else 'Event emission - verify event handlers exist'
                    ),
                    weight=0.3,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['tauri', 'events', method],
                    evidence=Evidence(kind='regex', pattern=method, details={'event': event}),
                    actions=(
                        [
                            ActionRecommendation(
                                type='mitigation_steps',
                                text='Cleanup event listener',
                                steps=[
                                    'Store the unlisten function returned by listen()',
                                    'Call unlisten in cleanup (useEffect return, onDestroy, etc.)',
                                    'Consider using once() for one-time events',
                                ],
                            )
                        ]
                        if listening
                        else None
                    ),
                )
            )
    return signals


tauri_apis = _api_table(
    'tauri',
    TAURI_APIS,
    '{name} API requires tauri.conf.json allowlist',
    '{name} API - verify configuration',
    action_text='Configure {name} API',
)

WINDOW_RULES = (
    Rule(
        id='electron-browser-window',
        pattern=re.compile(r'new\s+BrowserWindow\s*\('),
        category='side-effect',
        title='Browser Window Creation',
        reason='New window - verify webPreferences security settings',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('electron', 'window', 'security'),
    ),
    Rule(
        id='tauri-webview-window',
        pattern=re.compile(r'new\s+WebviewWindow\s*\(|WebviewWindow\.new\s*\('),
        category='side-effect',
        title='Webview Window Creation',
        reason='New window - verify window configuration',
        weight=0.4,
        signal_class='behavioral',
        confidence='high',
        tags=('tauri', 'window'),
    ),
    Rule(
        id='electron-loadurl',
        pattern=re.compile(r'\.loadURL\s*\('),
        category='side-effect',
        title='Window loadURL',
        reason='Loading external URL - validate source for security',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('electron', 'window', 'loadurl'),
    ),
    Rule(
        id='electron-loadfile',
        pattern=re.compile(r'\.loadFile\s*\('),
        category='side-effect',
        title='Window loadFile',
        reason='Loading local file - verify path resolution',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('electron', 'window', 'loadfile'),
        forbids=re.compile(r'loadURL'),
    ),
)


def window_actions(ctx: FileContext) -> list[Signal]:
    runtime = desktop_variant(ctx.path, ctx.content) or 'desktop'
    signals = []
    for index in ctx.focus_indices():
        found = re.search(r'\.(close|hide|show|minimize|maximize|focus)\s*\(\)', ctx.lines[index])
        if found is None:
            continue
        action = found.group(1)
        signals.append(
            ctx.line_signal(
                index,
                id=f'desktop-window-{action}',
                title=f'Window {action}',
                category='side-effect',
                reason=f'Window {action} - verify user experience',
                weight=0.2,
                signal_class='behavioral',
                confidence='high',
                tags=[runtime, 'window', action],
                evidence=Evidence(kind='regex', pattern=action),
            )
        )
    return signals


DESKTOP_VARIANTS = {
    'electron': Variant(rules=ELECTRON_SECURITY_RULES, probes=(electron_ipc, electron_apis)),
    'tauri': Variant(rules=TAURI_RULES, probes=(tauri_ipc, tauri_apis)),
}

DESKTOP = FrameworkLayer(
    name='electron',
    applies=is_desktop_file,
    rules=WINDOW_RULES,
    probes=(dispatch_variant(desktop_variant, DESKTOP_VARIANTS), window_actions),
)
