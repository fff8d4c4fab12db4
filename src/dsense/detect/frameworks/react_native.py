"""React Native layer: native modules, platform branches, navigation, list performance and Expo."""

import re

from dsense.detect.layer import FrameworkLayer, Variant, dispatch_variant
from dsense.detect.rules import FileContext, Rule
from dsense.models import ActionRecommendation, Evidence, Signal

RN_IMPORT = re.compile(r'''from\s+['"]react-native['"]''')
EXPO_IMPORT = re.compile(r'''from\s+['"]expo''')
RN_PATH_MARKERS = ('.native.', '.ios.', '.android.')

WINDOW_KEY_EXTRACTOR = 5
WINDOW_NESTED_LIST = 20

# (pattern, module name, needs native linking or permissions)
NATIVE_MODULES = (
    (re.compile(r'NativeModules'), 'NativeModules', True),
    (re.compile(r'requireNativeComponent'), 'Native Component', True),
    (re.compile(r'NativeEventEmitter'), 'Native Event Emitter', True),
    (re.compile(r'TurboModuleRegistry'), 'TurboModule', True),
    (re.compile(r'UIManager'), 'UIManager', False),
    (re.compile(r'LayoutAnimation'), 'LayoutAnimation', False),
    (re.compile(r'Linking'), 'Linking', False),
    (re.compile(r'Alert'), 'Alert', False),
    (re.compile(r'PermissionsAndroid'), 'Permissions (Android)', True),
    (re.compile(r'AccessibilityInfo'), 'Accessibility', False),
    (re.compile(r'AppState'), 'AppState', False),
    (re.compile(r'Keyboard'), 'Keyboard', False),
    (re.compile(r'BackHandler'), 'BackHandler', False),
    (re.compile(r'Vibration'), 'Vibration', False),
    (re.compile(r'Share'), 'Share', False),
    (re.compile(r'Clipboard'), 'Clipboard', False),
    (re.compile(r'DeviceEventEmitter'), 'DeviceEventEmitter', False),
    (re.compile(r'PushNotificationIOS'), 'Push Notifications (iOS)', True),
)

# (package, module name, requires a runtime permission)
EXPO_MODULES = (
    ('expo-camera', 'Camera', True),
    ('expo-location', 'Location', True),
    ('expo-media-library', 'Media Library', True),
    ('expo-contacts', 'Contacts', True),
    ('expo-calendar', 'Calendar', True),
    ('expo-notifications', 'Notifications', True),
    ('expo-sensors', 'Sensors', False),
    ('expo-haptics', 'Haptics', False),
    ('expo-audio', 'Audio', True),
    ('expo-video', 'Video', False),
    ('expo-image-picker', 'Image Picker', True),
    ('expo-document-picker', 'Document Picker', False),
    ('expo-file-system', 'File System', False),
    ('expo-secure-store', 'Secure Store', False),
    ('expo-auth-session', 'Auth Session', False),
    ('expo-local-authentication', 'Biometrics', False),
    ('expo-application', 'Application', False),
    ('expo-device', 'Device', False),
    ('expo-constants', 'Constants', False),
    ('expo-linking', 'Linking', False),
    ('expo-web-browser', 'Web Browser', False),
    ('expo-splash-screen', 'Splash Screen', False),
    ('expo-font', 'Font', False),
    ('expo-asset', 'Asset', False),
    ('expo-updates', 'Updates (OTA)', False),
    ('expo-router', 'Expo Router', False),
)


def is_react_native_file(path: str, content: str) -> bool:
    """True for react-native or expo imports, or platform-suffixed file names."""
    if RN_IMPORT.search(content) or EXPO_IMPORT.search(content):
        return True
    return any(marker in path for marker in RN_PATH_MARKERS)


def mobile_variant(path: str, content: str) -> str | None:
    """'expo' for Expo projects, else None."""
    if EXPO_IMPORT.search(content) or 'expo' in path or re.search(r'app\.json|app\.config', path):
        return 'expo'
    return None


def _slug(name: str) -> str:
    return re.sub(r'\s+', '-', name.lower())


def native_modules(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        for pattern, name, needs_linking in NATIVE_MODULES:
            if not pattern.search(line):
                continue
            if needs_linking:
                reason = f'{name} requires native integration - verify linking and permissions'
                actions = [
                    ActionRecommendation(
                        type='mitigation_steps',
                        text=f'Verify {name} setup',
                        steps=[
                            'Ensure native module is properly linked',
                            'Test on both iOS and Android',
                            'Handle permission requests gracefully',
                            'Provide fallback for unsupported devices',
                        ],
                    )
                ]
            else:
                reason = f'{name} native API - verify platform support'
                actions = None
            signals.append(
                ctx.line_signal(
                    index,
                    id='rn-native-module',
                    title=f'Native Module: {name}',
                    category='side-effect',
                    reason=reason,
                    weight=0.6 if needs_linking else 0.3,
                    signal_class='behavioral' if needs_linking else 'maintainability',
                    confidence='high',
                    tags=['react-native', 'native', _slug(name)],
                    evidence=Evidence(kind='regex', pattern=pattern.pattern, details={'module': name}),
                    actions=actions,
                )
            )
            break
    return signals


def platform_checks(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        if not re.search(r'''Platform\.OS\s*===?\s*['"]''', line):
            continue
        found = re.search(r'''Platform\.OS\s*===?\s*['"](\w+)['"]''', line)
        platform = found.group(1) if found else None
        signals.append(
            ctx.line_signal(
                index,
                id='rn-platform-check',
                title='Platform-Specific Code',
                category='side-effect',
                reason=f'Platform check for {platform} - verify behavior on both platforms',
                weight=0.3,
                signal_class='behavioral',
                confidence='high',
                tags=['react-native', 'platform', platform or 'os'],
                evidence=Evidence(kind='regex', pattern='Platform.OS'),
            )
        )
    return signals


def navigation(ctx: FileContext) -> list[Signal]:
    """Navigator definitions, imperative navigation calls and navigation hooks."""
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]

        found = re.search(r'create(\w+)Navigator\s*\(', line)
        if found:
            nav_type = found.group(1)
            signals.append(
                ctx.line_signal(
                    index,
                    id='rn-navigator',
                    title=f'{nav_type} Navigator',
                    category='signature',
                    reason='Navigation structure - verify screen registration and types',
                    weight=0.4,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['react-native', 'navigation', nav_type.lower()],
                    evidence=Evidence(kind='regex', pattern='createNavigator'),
                )
            )

        found = re.search(r'navigation\.(navigate|push|replace|goBack|reset|popToTop)', line)
        if found:
            action = found.group(1)
            signals.append(
                ctx.line_signal(
                    index,
                    id='rn-navigation-action',
                    title=f'Navigation: {action}',
                    category='side-effect',
                    reason='Navigation action - verify params and screen existence',
                    weight=0.3,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['react-native', 'navigation', action.lower()],
                    evidence=Evidence(kind='regex', pattern=f'navigation.{action}'),
                )
            )

        found = re.search(r'use(Navigation|Route|FocusEffect|IsFocused)\s*\(', line)
        if found:
            hook = found.group(1)
            signals.append(
                ctx.line_signal(
                    index,
                    id=f'rn-navigation-hook-{hook.lower()}',
                    title=f'use{hook} Hook',
                    category='async',
                    reason=f'Navigation hook - component will re-render on {hook.lower()} changes',
                    weight=0.2,
                    signal_class='behavioral',
                    confidence='high',
                    tags=['react-native', 'navigation', 'hooks', hook.lower()],
                    evidence=Evidence(kind='regex', pattern=f'use{hook}'),
                )
            )
    return signals


RN_RULES = (
    Rule(
        id='rn-platform-select',
        pattern=re.compile(r'Platform\.select\s*\('),
        category='side-effect',
        title='Platform.select Usage',
        reason='Platform-specific values - test on both iOS and Android',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'platform', 'select'),
    ),
    Rule(
        id='rn-dimensions',
        pattern=re.compile(r'Dimensions\.get\s*\('),
        category='side-effect',
        title='Screen Dimensions',
        reason='Dimensions may change on rotation - consider useWindowDimensions hook',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'dimensions', 'responsive'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Handle dimension changes',
                steps=[
                    'Use useWindowDimensions hook for reactive updates',
                    'Listen to Dimensions change events if needed',
                    'Test on different screen sizes and orientations',
                ],
            ),
        ),
    ),
    Rule(
        id='rn-use-dimensions',
        pattern=re.compile(r'useWindowDimensions\s*\('),
        category='side-effect',
        title='useWindowDimensions Hook',
        reason='Responsive dimensions hook - triggers re-render on rotation',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'hooks', 'dimensions'),
    ),
    Rule(
        id='rn-safe-area',
        pattern=re.compile(r'SafeArea(?:View|Provider|Consumer)'),
        category='side-effect',
        title='Safe Area Handling',
        reason='Safe area insets - verify notch/home indicator handling',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'safe-area', 'layout'),
    ),
    Rule(
        id='rn-deep-linking',
        pattern=re.compile(r'linking\s*:\s*\{|Linking\.getInitialURL|Linking\.addEventListener'),
        category='async',
        title='Deep Linking',
        reason='Deep linking configuration - verify URL scheme and universal links',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'deep-linking', 'urls'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Deep linking best practices',
                steps=[
                    'Test URL schemes on both platforms',
                    'Handle missing screens gracefully',
                    'Verify universal links configuration',
                    'Test with app in killed/background state',
                ],
            ),
        ),
    ),
    Rule(
        id='rn-inline-style',
        pattern=re.compile(r'style=\{\{'),
        category='side-effect',
        title='Inline Style Object',
        reason='Inline styles create new object on each render - use StyleSheet',
        weight=0.3,
        signal_class='maintainability',
        confidence='high',
        tags=('react-native', 'performance', 'styles'),
    ),
    Rule(
        id='rn-flatlist-no-key',
        pattern=re.compile(r'FlatList'),
        category='side-effect',
        title='FlatList Missing keyExtractor',
        reason='FlatList without keyExtractor causes poor performance',
        weight=0.5,
        signal_class='behavioral',
        confidence='medium',
        tags=('react-native', 'performance', 'flatlist'),
        actions=(
            ActionRecommendation(
                type='mitigation_steps',
                text='Optimize FlatList',
                steps=[
                    'Add keyExtractor with unique stable keys',
                    'Add getItemLayout for fixed-size items',
                    'Use windowSize to reduce memory usage',
                    'Consider using FlashList for better performance',
                ],
            ),
        ),
        forbids=re.compile(r'keyExtractor'),
        after=WINDOW_KEY_EXTRACTOR,
    ),
    Rule(
        id='rn-nested-virtualized',
        pattern=re.compile(r'ScrollView'),
        category='side-effect',
        title='Nested Virtualized List',
        reason='Nested virtualized lists in ScrollView cause performance issues',
        weight=0.6,
        signal_class='behavioral',
        confidence='medium',
        tags=('react-native', 'performance', 'lists', 'scrollview'),
        requires=re.compile(r'FlatList|SectionList|VirtualizedList'),
        after=WINDOW_NESTED_LIST,
    ),
    Rule(
        id='rn-image-no-resize',
        pattern=re.compile(r'source=\{\{.*uri:'),
        category='side-effect',
        title='Image Missing resizeMode',
        reason='Remote image without resizeMode may cause layout issues',
        weight=0.2,
        signal_class='maintainability',
        confidence='medium',
        tags=('react-native', 'images', 'performance'),
        forbids=re.compile(r'resizeMode'),
    ),
    Rule(
        id='rn-animated',
        pattern=re.compile(r'Animated\.(Value|timing|spring|decay|sequence|parallel)'),
        category='side-effect',
        title='Animated API',
        reason='Animation - verify useNativeDriver for 60fps performance',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'animation', 'performance'),
    ),
    Rule(
        id='rn-reanimated',
        pattern=re.compile(r'useSharedValue|useAnimatedStyle|withTiming|withSpring'),
        category='side-effect',
        title='Reanimated Animation',
        reason='Reanimated animation - runs on UI thread for smooth 60fps',
        weight=0.2,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'reanimated', 'animation'),
    ),
    Rule(
        id='rn-gesture',
        pattern=re.compile(r'Gesture(?:Detector|Handler)|Pan|Pinch|Rotation|Fling|LongPress|Tap'),
        category='side-effect',
        title='Gesture Handler',
        reason='Gesture handling - verify cancellation and simultaneous gestures',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('react-native', 'gestures', 'interaction'),
    ),
)


def expo_modules(ctx: FileContext) -> list[Signal]:
    signals = []
    for index in ctx.focus_indices():
        line = ctx.lines[index]
        for package, name, needs_permission in EXPO_MODULES:
            if package not in line:
                continue
            actions = None
            if needs_permission:
                actions = [
                    ActionRecommendation(
                        type='mitigation_steps',
                        text=f'Handle {name} permissions',
                        steps=[
                            'Request permissions before using API',
                            'Handle permission denial gracefully',
                            'Add permission descriptions in app.json',
                            'Test on both iOS and Android',
                        ],
                    )
                ]
            signals.append(
                ctx.line_signal(
                    index,
                    id=f'expo-{_slug(name)}',
                    title=f'Expo {name}',
                    category='side-effect',
                    reason=(
                        f'Expo {name} requires permissions - verify permission flow'
                        if needs_permission
                        else f'Expo {name} module - verify platform support'
                    ),
                    weight=0.5 if needs_permission else 0.2,
                    signal_class='behavioral' if needs_permission else 'maintainability',
                    confidence='high',
                    tags=['expo', _slug(name)],
                    evidence=Evidence(kind='regex', pattern=package, details={'module': name}),
                    actions=actions,
                )
            )
            break
    return signals


EXPO_RULES = (
    Rule(
        id='expo-router-navigation',
        pattern=re.compile(r'''from\s+['"]expo-router['"]'''),
        category='side-effect',
        title='Expo Router Navigation',
        reason='File-based routing navigation - verify route paths',
        weight=0.3,
        signal_class='behavioral',
        confidence='high',
        tags=('expo', 'router', 'navigation'),
        requires=re.compile(r'useRouter|router\.push|router\.replace'),
    ),
    Rule(
        id='expo-config',
        pattern=re.compile(r'expo\.plugins|app\.config\.(js|ts)|app\.json'),
        category='signature',
        title='Expo Configuration',
        reason='Expo config change - may affect build or native code',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('expo', 'config', 'build'),
    ),
    Rule(
        id='expo-eas',
        pattern=re.compile(r'eas\.json|expo-updates'),
        category='signature',
        title='EAS Build/Updates',
        reason='EAS configuration - affects CI/CD and OTA updates',
        weight=0.5,
        signal_class='behavioral',
        confidence='high',
        tags=('expo', 'eas', 'deployment'),
    ),
)

REACT_NATIVE = FrameworkLayer(
    name='react-native',
    applies=is_react_native_file,
    rules=RN_RULES,
    probes=(
        native_modules,
        platform_checks,
        navigation,
        dispatch_variant(mobile_variant, {'expo': Variant(rules=EXPO_RULES, probes=(expo_modules,))}),
    ),
)
