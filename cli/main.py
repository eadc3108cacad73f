#!/usr/bin/env python3
"""
Mintpad - Command Line Interface

Deploy collections through the factory, manage sale phases, whitelists and
royalties, mint, and inspect the value ledger. State is kept in the
configured data directory between invocations.
"""

from typing import Optional

import click

from cli import __version__
from cli.context import CLIContext, handle_cli_error, pass_context
from cli.commands.collection import collection
from cli.commands.config import config
from cli.commands.factory import factory
from cli.commands.ledger import ledger
from cli.commands.mint import mint


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              help='Path to configuration file')
@click.option('--profile', '-p',
              type=click.Choice(['production', 'development']),
              help='Configuration profile')
@click.option('--output-format', '-o',
              type=click.Choice(['table', 'json', 'yaml']),
              help='Output format (default from configuration)')
@click.option('--data-dir', '-d',
              help='Launchpad data directory (overrides storage.data_dir)')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.version_option(__version__, prog_name='mintpad')
@pass_context
@handle_cli_error
def cli(ctx: CLIContext, config_file: Optional[str], profile: Optional[str],
        output_format: Optional[str], data_dir: Optional[str], verbose: int):
    """
    Mintpad NFT launchpad

    Deploy NFT collections from shared implementations, run phased sales
    with whitelists and per-wallet limits, and split royalties.

    Examples:
        mintpad factory init --owner 0xabc... --platform-address 0xdef... --platform-fee 100
        mintpad factory deploy --caller 0xabc... --name "Apes" --symbol APE --max-supply 100
        mintpad collection add-phase 0x123... --caller 0xabc... --price 10 --limit 2 --start 0 --end 2000000000
        mintpad mint 0x123... --caller 0x456... --phase 0 --token-id 1
    """
    ctx.config_file = config_file
    ctx.profile = profile
    ctx.output_format = output_format
    ctx.data_dir = data_dir
    ctx.verbose = verbose

    ctx.setup_logging()
    ctx.load_config()

    ctx.logger.debug("CLI initialized with context")


cli.add_command(factory)
cli.add_command(collection)
cli.add_command(mint)
cli.add_command(ledger)
cli.add_command(config)


def main():
    cli()


if __name__ == '__main__':
    main()
