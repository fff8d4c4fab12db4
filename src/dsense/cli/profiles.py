"""CLI command for listing detector profiles."""

import click

from dsense.detect.router import CASCADE, PROFILE_ALIASES, PROFILES


@click.command('profiles')
def profiles_command():
    """List detector profiles, aliases and the auto-detection order."""
    click.echo('Profiles:')
    for name, detector in PROFILES.items():
        layers = ', '.join(layer.name for layer in detector.layers) or '-'
        click.echo(f'  {name:<14} layers: {layers}')

    click.echo('Aliases:')
    for alias, target in PROFILE_ALIASES.items():
        click.echo(f'  {alias:<14} -> {target}')

    click.echo('Auto cascade (first match wins):')
    for position, (name, _) in enumerate(CASCADE, 1):
        click.echo(f'  {position}. {name}')
    click.echo(f'  {len(CASCADE) + 1}. generic')
