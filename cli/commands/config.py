#!/usr/bin/env python3
"""
Configuration Commands for Mintpad CLI

Inspect, validate and write CLI configuration.
"""

from typing import Optional

import click

from cli.config import CONFIG_SEARCH_PATHS, ENV_PREFIX, ENV_NESTING, PROFILES
from cli.context import CLIContext, handle_cli_error, pass_context


@click.group()
@pass_context
def config(ctx: CLIContext):
    """
    Configuration management commands.
    """
    ctx.logger.debug("Config command group invoked")


@config.command('show')
@click.option('--key', help='Show a single dot-separated key (e.g. factory.platform_fee)')
@click.option('--sources', is_flag=True, help='Show which sources were merged')
@pass_context
@handle_cli_error
def show_config(ctx: CLIContext, key: Optional[str], sources: bool):
    """Show the effective configuration."""
    if sources:
        ctx.output(ctx.config.get_sources())
    elif key:
        value = ctx.config.get(key)
        if value is None:
            raise click.BadParameter(f"Unknown configuration key: {key}", param_hint='--key')
        ctx.output({key: value})
    else:
        ctx.output(ctx.config.load(), format_override='yaml' if ctx.output_format == 'table' else None)


@config.command('init')
@click.option('--output', 'path', help='File to write (default: ./.mintpad.yml)')
@click.option('--format', 'file_format', type=click.Choice(['yaml', 'json']), default='yaml')
@pass_context
@handle_cli_error
def init_config(ctx: CLIContext, path: Optional[str], file_format: str):
    """Write the effective configuration to a file."""
    saved = ctx.config.save(path, format=file_format)
    click.echo(f"Configuration written to {saved}")


@config.command('list-profiles')
@pass_context
def list_profiles(ctx: CLIContext):
    """List configuration profiles."""
    ctx.output([
        {'profile': name, 'overrides': ', '.join(sorted(settings))}
        for name, settings in PROFILES.items()
    ])


@config.command('search-paths')
def search_paths():
    """Show where configuration files are looked up."""
    for path in CONFIG_SEARCH_PATHS:
        status = "found" if path.exists() else "missing"
        click.echo(f"{path} ({status})")
    click.echo(f"Environment: {ENV_PREFIX}<SECTION>{ENV_NESTING}<KEY>")
