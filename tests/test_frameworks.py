"""Tests for framework layers and their composition with the generic battery."""

from dsense.classify import validate_signal
from dsense.detect.frameworks import (
    desktop_variant,
    is_angular_file,
    is_react_file,
    is_svelte_file,
    is_vue_file,
    mobile_variant,
    ssr_variant,
)
from dsense.detect.frameworks.ssr import SSR_VARIANTS
from dsense.detect.generic import GENERIC
from dsense.detect.layer import Detector, FrameworkLayer, Variant, dispatch_variant
from dsense.detect.router import PROFILES
from dsense.detect.rules import FileContext
from dsense.models import ChangedRange, DetectorOptions

REACT_COMPONENT = """import React from 'react';

export function Component() {
  useEffect(() => {
    doIt();
  });
  return null;
}
"""


def run(profile, content, path, ranges=None):
    return PROFILES[profile].detect(content, path, DetectorOptions(changed_ranges=ranges))


def ids(signals):
    return {s.id for s in signals}


def by_id(signals, signal_id):
    return [s for s in signals if s.id == signal_id]


def marker_check(signal_id):
    def check(ctx):
        return [ctx.line_signal(0, id=signal_id, title=signal_id, category='complexity', reason='marker', weight=0.1)]

    return check


class TestComposition:
    """Base layer always runs; extra layers only when they apply."""

    def test_base_then_layer(self):
        """Test generic signals come before layer signals."""
        marker = FrameworkLayer(name='marker', probes=(marker_check('x-marker'),))
        signals = Detector('test', GENERIC, (marker,)).detect("fetch('/x');", 'a.ts')
        assert signals[0].id == 'network-fetch'
        assert signals[-1].id == 'x-marker'

    def test_layer_skipped_when_not_applicable(self):
        never = FrameworkLayer(name='never', applies=lambda path, content: False, probes=(marker_check('x-never'),))
        signals = Detector('test', GENERIC, (never,)).detect('const a = 1;', 'a.ts')
        assert 'x-never' not in ids(signals)

    def test_dispatch_variant_runs_one_variant(self):
        """Test only the classified variant runs; unknown variants run nothing."""
        dispatch = dispatch_variant(
            lambda path, content: 'b' if path.endswith('.b') else None,
            {'a': Variant(probes=(marker_check('x-a'),)), 'b': Variant(probes=(marker_check('x-b'),))},
        )
        assert [s.id for s in dispatch(FileContext.build('x', 'file.b'))] == ['x-b']
        assert dispatch(FileContext.build('x', 'file.c')) == []


class TestReact:
    """React layer."""

    def test_effect_without_deps(self):
        signals = run('react', REACT_COMPONENT, 'Component.tsx')
        effect = by_id(signals, 'react-effect-no-deps')
        assert [s.lines for s in effect] == [[4]]
        assert effect[0].severity == 'blocker'
        assert validate_signal(effect[0]).valid

    def test_effect_with_deps(self):
        content = REACT_COMPONENT.replace('  });', '  }, [value]);')
        assert by_id(run('react', content, 'Component.tsx'), 'react-effect-no-deps') == []

    def test_generic_signals_included(self):
        signals = run('react', REACT_COMPONENT, 'Component.tsx')
        assert 'export-change' in ids(signals)

    def test_index_key(self):
        content = "import React from 'react';\nitems.map((item, index) => <Row key={index} />)"
        assert by_id(run('react', content, 'List.jsx'), 'react-index-key')

    def test_layer_gated_by_predicate(self):
        """Test React rules are skipped for a non-React file."""
        content = REACT_COMPONENT.replace("import React from 'react';", '')
        assert by_id(run('react', content, 'util.ts'), 'react-effect-no-deps') == []

    def test_is_react_file(self):
        assert is_react_file('a.tsx', '')
        assert is_react_file('a.js', "import { useState } from 'react'")
        assert not is_react_file('a.ts', 'const a = 1;')


class TestVue:
    """Vue layer."""

    def test_watch_without_cleanup(self):
        content = "import { watch } from 'vue';\nwatch(source, () => {\n  load();\n});"
        assert by_id(run('vue', content, 'useThing.ts'), 'vue-watch-no-cleanup')

    def test_watch_with_cleanup(self):
        content = "import { watch } from 'vue';\nwatch(source, (v, o, onCleanup) => {\n  onCleanup(stop);\n});"
        assert by_id(run('vue', content, 'useThing.ts'), 'vue-watch-no-cleanup') == []

    def test_props_mutation(self):
        signals = by_id(run('vue', 'props.value = 1;', 'Comp.vue'), 'vue-props-mutation')
        assert signals[0].severity == 'blocker'

    def test_template_vfor_vif(self):
        content = '<template>\n  <li v-for="x in xs" v-if="x.ok">{{ x }}</li>\n</template>\n<script setup>\n</script>'
        signals = by_id(run('vue', content, 'List.vue'), 'vue-vfor-vif')
        assert [s.lines for s in signals] == [[2]]

    def test_template_ignored_outside_sfc(self):
        """Test template rules only run on .vue files."""
        content = "import { ref } from 'vue';\nconst t = `<template>\n<li v-for=\"x\" v-if=\"y\"></li>\n</template>`"
        assert by_id(run('vue', content, 'render.ts'), 'vue-vfor-vif') == []

    def test_many_refs(self):
        content = '\n'.join(f'const r{i} = ref({i});' for i in range(11))
        assert by_id(run('vue', content, 'Big.vue'), 'vue-many-refs')

    def test_is_vue_file(self):
        assert is_vue_file('App.vue', '')
        assert is_vue_file('store.ts', "import { ref } from 'vue'")
        assert not is_vue_file('store.ts', '')


class TestAngular:
    """Angular layer."""

    def test_subscription_leak(self):
        content = "import { Component } from '@angular/core';\nthis.data$.subscribe(v => this.v = v);"
        signals = by_id(run('angular', content, 'list.component.ts'), 'angular-subscription-leak')
        assert signals[0].lines == [2]

    def test_subscription_with_take_until(self):
        content = 'this.data$.pipe(takeUntil(this.destroy$)).subscribe(v => this.v = v);'
        assert by_id(run('angular', content, 'list.component.ts'), 'angular-subscription-leak') == []

    def test_nested_subscribe(self):
        content = 'a$.subscribe(a => {\n  b$.subscribe(b => use(a, b));\n});'
        signals = by_id(run('angular', content, 'list.component.ts'), 'angular-nested-subscribe')
        assert [s.lines for s in signals] == [[1]]

    def test_service_rules_only_in_services(self):
        content = 'private items = new BehaviorSubject([]);'
        assert by_id(run('angular', content, 'items.service.ts'), 'angular-service-state')
        assert by_id(run('angular', content, 'items.component.ts'), 'angular-service-state') == []

    def test_is_angular_file(self):
        assert is_angular_file('app.component.ts', '')
        assert is_angular_file('x.ts', "import { Injectable } from '@angular/core';")
        assert not is_angular_file('x.ts', '')


class TestSvelte:
    """Svelte and SvelteKit layer."""

    def test_reactive_side_effect_vs_statement(self):
        signals = run('svelte', '$: console.log(count);\n$: doubled = count * 2;', 'Counter.svelte')
        assert [s.lines for s in by_id(signals, 'svelte-reactive-side-effect')] == [[1]]
        assert [s.lines for s in by_id(signals, 'svelte-reactive-statement')] == [[2]]

    def test_reactive_statement(self):
        signals = run('svelte', '$: if (count > 10) reset;', 'Counter.svelte')
        assert by_id(signals, 'svelte-reactive-statement')
        assert by_id(signals, 'svelte-reactive-side-effect') == []

    def test_store_factory(self):
        content = "<script>\n  import { writable } from 'svelte/store';\n  const count = writable(0);\n</script>"
        assert by_id(run('svelte', content, 'Counter.svelte'), 'svelte-store-writable')

    def test_auto_subscription_only_on_changed_lines(self):
        """Test store auto-subscriptions are reported on changed lines only."""
        content = '\n'.join(['<p>{$count}</p>', '<p>static</p>', '<p>{$user}</p>'])
        signals = run('svelte', content, 'View.svelte', ranges=[ChangedRange(start_line=3, end_line=3)])
        assert [s.lines for s in by_id(signals, 'svelte-store-auto-subscription')] == [[3]]

    def test_kit_rules_only_in_route_files(self):
        content = "import { redirect } from '@sveltejs/kit';\nthrow redirect(303, '/login');"
        assert by_id(run('svelte', content, 'src/routes/+page.server.ts'), 'sveltekit-redirect')
        assert by_id(run('svelte', content, 'src/lib/Form.svelte'), 'sveltekit-redirect') == []

    def test_is_svelte_file(self):
        assert is_svelte_file('App.svelte', '')
        assert is_svelte_file('src/routes/+layout.ts', '')
        assert not is_svelte_file('a.ts', '')


class TestNode:
    """Node layer."""

    def test_sync_operation(self):
        content = "const fs = require('fs');\nconst data = fs.readFileSync(path);"
        signals = by_id(run('node', content, 'src/server/load.js'), 'node-sync-op')
        assert signals[0].evidence.details['operation'] == 'readFileSync'
        assert signals[0].actions

    def test_process_error_handler_is_critical(self):
        content = "process.on('uncaughtException', (err) => log(err));"
        signals = by_id(run('node', content, 'src/server/main.js'), 'node-process-uncaughtexception')
        assert signals[0].signal_class == 'critical'
        assert signals[0].severity == 'blocker'
        assert validate_signal(signals[0]).valid

    def test_auth_middleware_vs_plain(self):
        signals = run('node', 'app.use(passport.session());\napp.use(express.json());', 'src/server/app.js')
        assert [s.lines for s in by_id(signals, 'node-auth-middleware')] == [[1]]
        assert [s.lines for s in by_id(signals, 'node-middleware')] == [[2]]

    def test_layer_skipped_for_browser_file(self):
        """Test Node rules are skipped for a browser file without Node imports."""
        content = 'const data = fs.readFileSync(path);'
        assert by_id(run('node', content, 'src/ui/widget.js'), 'node-sync-op') == []


class TestSSR:
    """SSR layer and its variants."""

    def test_browser_api_in_server_file(self):
        content = "export default function Page() {\n  const w = window.innerWidth;\n}"
        signals = by_id(run('ssr', content, 'src/app/page.tsx'), 'ssr-browser-api')
        assert signals[0].lines == [2]
        assert signals[0].signal_class == 'critical'
        assert 'next' in signals[0].tags

    def test_guarded_browser_api(self):
        content = "if (typeof window !== 'undefined') {\n  run();\n}"
        assert by_id(run('ssr', content, 'src/app/page.tsx'), 'ssr-browser-api') == []

    def test_use_client_skips_browser_apis(self):
        content = '"use client";\nconst w = window.innerWidth;'
        assert by_id(run('ssr', content, 'src/pages/index.tsx'), 'ssr-browser-api') == []

    def test_env_leakage(self):
        content = 'const key = process.env.STRIPE_SECRET_KEY;'
        signals = by_id(run('ssr', content, 'src/app/components/Pay.tsx'), 'ssr-env-leakage')
        assert signals[0].evidence.details == {'envVar': 'STRIPE_SECRET_KEY'}
        assert signals[0].weight == 0.9

    def test_use_client_position(self):
        """Test 'use client' after an import is flagged."""
        content = "import x from 'y';\n'use client';"
        assert by_id(run('ssr', content, 'src/app/page.tsx'), 'next-use-client-position')

    def test_nuxt_variant(self):
        content = "const { data } = await useFetch('/api/items');"
        signals = by_id(run('ssr', content, 'nuxt-app/server/index.vue'), 'nuxt-data-fetching')
        assert signals[0].title == 'Nuxt useFetch'

    def test_variant_classifier(self):
        assert ssr_variant('src/app/page.tsx', '') == 'next'
        assert ssr_variant('x.ts', "const d = useAsyncData('k', load)") == 'nuxt'
        assert ssr_variant('src/routes/+page.ts', '') == 'sveltekit'
        assert ssr_variant('src/index.astro', '') == 'astro'
        assert ssr_variant('x.ts', '') is None

    def test_sveltekit_has_no_ssr_variant(self):
        """Test SvelteKit is classified but left to the Svelte profile."""
        assert 'sveltekit' not in SSR_VARIANTS


class TestReactNative:
    """React Native layer."""

    def test_flatlist_without_key_extractor(self):
        content = "import { FlatList } from 'react-native';\n<FlatList data={items} renderItem={render} />"
        signals = run('react-native', content, 'List.tsx')
        assert [s.lines for s in by_id(signals, 'rn-flatlist-no-key')] == [[1], [2]]

    def test_flatlist_with_key_extractor(self):
        content = '<FlatList\n  data={items}\n  keyExtractor={item => item.id}\n/>'
        signals = run('react-native', content, 'List.native.tsx')
        assert by_id(signals, 'rn-flatlist-no-key') == []

    def test_platform_select(self):
        content = "import { Platform } from 'react-native';\nconst pad = Platform.select({ ios: 1, android: 2 });"
        assert by_id(run('react-native', content, 'Box.tsx'), 'rn-platform-select')

    def test_mobile_variant(self):
        assert mobile_variant('App.tsx', "import Constants from 'expo-constants';") == 'expo'
        assert mobile_variant('App.tsx', "import { View } from 'react-native';") is None


class TestDesktop:
    """Electron and Tauri layer."""

    def test_node_integration(self):
        content = (
            "const { BrowserWindow } = require('electron');\n"
            'new BrowserWindow({ webPreferences: { nodeIntegration: true } });'
        )
        signals = run('electron', content, 'src/main.ts')
        node_integration = by_id(signals, 'electron-node-integration')
        assert node_integration[0].severity == 'blocker'
        assert validate_signal(node_integration[0]).valid
        assert by_id(signals, 'electron-browser-window')

    def test_ipc_main_handler(self):
        content = "import { ipcMain } from 'electron';\nipcMain.handle('save-file', async (e, data) => save(data));"
        signals = by_id(run('electron', content, 'src/main.ts'), 'electron-ipc-main')
        assert signals[0].evidence.details == {'channel': 'save-file', 'method': 'handle'}

    def test_tauri_invoke(self):
        content = "import { invoke } from '@tauri-apps/api';\nawait invoke('read_config');"
        signals = by_id(run('electron', content, 'src/app.ts'), 'tauri-invoke')
        assert signals[0].title == 'Tauri Invoke: read_config'

    def test_loadfile_vs_loadurl(self):
        """Test loadFile and loadURL produce separate signals."""
        content = "import { app } from 'electron';\nwin.loadFile('index.html');\nwin.loadURL(url);"
        signals = run('electron', content, 'src/main.ts')
        assert [s.lines for s in by_id(signals, 'electron-loadfile')] == [[2]]
        assert [s.lines for s in by_id(signals, 'electron-loadurl')] == [[3]]

    def test_desktop_variant(self):
        assert desktop_variant('src/main.ts', "import { app } from 'electron'") == 'electron'
        assert desktop_variant('src-tauri/main.rs', '') == 'tauri'
        assert desktop_variant('src/app.ts', '') is None
