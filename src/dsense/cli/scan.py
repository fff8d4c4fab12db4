"""CLI command for scanning files for signals."""

import json
import sys

import click

from dsense.analyse import analyse_paths
from dsense.detect.router import known_profiles
from dsense.errors import InvalidRangeError
from dsense.models import DetectorOptions, ScanResult
from dsense.patterns import default_registry
from dsense.prometheus import write_metrics
from dsense.utils import get_bool_env, get_context_lines, get_default_profile, parse_line_ranges

# Lower rank is less severe
SEVERITY_RANK = {'info': 0, 'warn': 1, 'blocker': 2}

# Exit codes
EXIT_SKIPPED = 1
EXIT_GATE = 2


def _parse_lines(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_line_ranges(value)
    except InvalidRangeError as e:
        raise click.BadParameter(str(e)) from e


def gate_hits(result: ScanResult, fail_on: str) -> list[str]:
    """Signal descriptions at or above ``fail_on`` severity inside a changed range."""
    threshold = SEVERITY_RANK[fail_on]
    return [
        f'{signal.file_path}:{signal.lines[0] if signal.lines else "-"} {signal.id} ({signal.severity})'
        for signal in result.signals()
        if signal.in_changed_range and SEVERITY_RANK[signal.severity] >= threshold
    ]


@click.command('scan')
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    '--profile',
    '-p',
    type=str,
    default=None,
    help='Detector profile, or auto (default: DSENSE_PROFILE or auto)',
)
@click.option(
    '--lines',
    '-l',
    'changed_ranges',
    type=str,
    default=None,
    callback=_parse_lines,
    help='Changed lines, e.g. 10-20,35. Without it the whole file is analysed.',
)
@click.option(
    '--context',
    '-c',
    type=int,
    default=None,
    help='Context lines around each changed range (default: DSENSE_CONTEXT_LINES or 5)',
)
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format')
@click.option('--patterns', 'use_patterns', is_flag=True, help='Use the pattern registry instead of a profile detector')
@click.option('--framework', type=str, default=None, help='Registry framework filter (with --patterns)')
@click.option(
    '--disable',
    multiple=True,
    type=str,
    help='Disable a registry pattern by id (with --patterns). Can be specified multiple times.',
)
@click.option('--max-workers', type=int, default=None, help='Maximum parallel workers (default: 10)')
@click.option('--metrics-file', type=click.Path(dir_okay=False), default=None, help='Write Prometheus metrics here')
@click.option('--no-color', is_flag=True, help='Disable colored output')
@click.option(
    '--fail-on',
    type=click.Choice(['blocker', 'warn']),
    default=None,
    help='Exit 2 when a signal of this severity or worse touches a changed line',
)
def scan_command(
    paths: tuple[str, ...],
    profile: str | None,
    changed_ranges,
    context: int | None,
    json_output: bool,
    use_patterns: bool,
    framework: str | None,
    disable: tuple[str, ...],
    max_workers: int | None,
    metrics_file: str | None,
    no_color: bool,
    fail_on: str | None,
):
    """Scan files for risk signals.

    Directories are walked for JavaScript, TypeScript, Vue, Svelte and
    Astro sources. Explicit file paths are always scanned.

    \b
    Exit codes:
        0  scan finished
        1  a file could not be read
        2  --fail-on gate triggered

    \b
    Examples:
        dsense scan src/api/client.ts
        dsense scan src/App.tsx --lines 40-52 --context 3
        dsense scan src/ --profile react --json
        dsense scan src/ --patterns --framework vue --disable console-log
    """
    profile = profile or get_default_profile()
    if profile not in known_profiles():
        click.echo(f"Error: Unknown profile '{profile}'. Expected one of: {', '.join(known_profiles())}", err=True)
        sys.exit(1)

    if context is not None and context < 0:
        click.echo('Error: --context must be non-negative', err=True)
        sys.exit(1)

    if (framework or disable) and not use_patterns:
        click.echo('Error: --framework and --disable require --patterns', err=True)
        sys.exit(1)

    options = DetectorOptions(
        changed_ranges=changed_ranges,
        context_lines=context if context is not None else get_context_lines(),
    )

    registry = None
    if use_patterns:
        registry = default_registry()
        for pattern_id in disable:
            if pattern_id not in registry:
                click.echo(f"Warning: unknown pattern '{pattern_id}'", err=True)
            registry.set_enabled(pattern_id, False)

    result = analyse_paths(
        list(paths),
        options=options,
        profile=profile,
        max_workers=max_workers,
        registry=registry,
        framework=framework,
    )

    if metrics_file:
        write_metrics(metrics_file)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        colorize = not no_color and get_bool_env('DSENSE_COLOR', True) and sys.stdout.isatty()
        for file_signals in result.files:
            click.echo(file_signals.to_cli(colorize=colorize))
            click.echo()
        for path in result.skipped:
            click.echo(f'Skipped: {path}', err=True)

    if result.skipped:
        sys.exit(EXIT_SKIPPED)

    if fail_on:
        hits = gate_hits(result, fail_on)
        if hits:
            click.echo(f'{len(hits)} signal(s) at or above {fail_on} in changed lines:', err=True)
            for hit in hits:
                click.echo(f'  {hit}', err=True)
            sys.exit(EXIT_GATE)
