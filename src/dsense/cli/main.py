"""Main CLI entry point with command groups"""

import click

from dsense.__version__ import __version__
from dsense.cli.patterns import patterns_command
from dsense.cli.profiles import profiles_command
from dsense.cli.scan import scan_command
from dsense.utils import setup_logging


class DefaultCommandGroup(click.Group):
    """Custom Click Group that allows a default command"""

    def parse_args(self, ctx, args):
        # During shell completion, don't redirect to default command
        if ctx.resilient_parsing:
            return super().parse_args(ctx, args)

        # If --help or --version is requested, show group help/version
        if not args or args[0] in ('--help', '-h', '--version'):
            return super().parse_args(ctx, args)

        if args[0] in self.commands:
            return super().parse_args(ctx, args)

        # Otherwise, treat as scan command (default)
        return super().parse_args(ctx, ['scan'] + args)


@click.group(cls=DefaultCommandGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name='dsense')
@click.pass_context
def cli(ctx):
    """
    dsense - Diff-aware signal detection for JavaScript and TypeScript sources.

    \b
    Commands:
      dsense <path> [path ...]   Scan files for signals (default command)
      dsense patterns            List the pattern registry
      dsense profiles            List detector profiles and the auto cascade

    \b
    Examples:
      dsense src/api/client.ts
      dsense scan src/ --lines 10-20,35 --fail-on blocker
      dsense scan src/App.tsx --profile react --json
      dsense scan src/ --patterns --framework vue
      dsense patterns --framework react
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


# Register subcommands (scan is the default command)
cli.add_command(scan_command, name='scan')
cli.add_command(patterns_command, name='patterns')
cli.add_command(profiles_command, name='profiles')


def main():
    """Entry point for the CLI"""
    setup_logging()
    cli()


if __name__ == '__main__':
    main()
