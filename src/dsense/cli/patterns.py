"""CLI command for listing the pattern registry."""

import json

import click

from dsense.patterns import default_registry


@click.command('patterns')
@click.option('--framework', type=str, default=None, help='Show generic patterns plus this framework')
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format')
def patterns_command(framework: str | None, json_output: bool):
    """List registry patterns used by `dsense scan --patterns`.

    \b
    Examples:
        dsense patterns
        dsense patterns --framework react --json
    """
    registry = default_registry()
    patterns = registry.by_framework(framework) if framework else registry.all()

    if json_output:
        click.echo(json.dumps([p.to_dict() for p in patterns], indent=2))
        return

    for pattern in patterns:
        scope = pattern.framework or 'generic'
        click.echo(
            f'{pattern.id:<28} {scope:<10} {pattern.category:<12} '
            f'{pattern.signal_class or "-":<16} {pattern.weight:.1f}  {pattern.name}'
        )
    click.echo(f'{len(patterns)} patterns ({", ".join(registry.frameworks())})')
