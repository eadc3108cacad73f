#!/usr/bin/env python3
"""
Factory Commands for Mintpad CLI

Initialize the launchpad, deploy collections, list deployments and manage the
platform fee and implementation versions.
"""

import json
from pathlib import Path
from typing import Optional, Tuple

import click

from collection.exceptions import ValidationError
from collection.royalties import SHARE_DENOMINATOR
from collection.schema import CollectionVariant
from factory.manager import FeePolicy

from cli.context import CLIContext, handle_cli_error, parse_addresses, pass_context, records_as_rows


VARIANTS = [v.value for v in CollectionVariant]
DEPLOY_VARIANTS = [CollectionVariant.SINGLE.value, CollectionVariant.MULTI.value]


@click.group()
@pass_context
def factory(ctx: CLIContext):
    """
    Factory administration and collection deployment.
    """
    ctx.logger.debug("Factory command group invoked")


@factory.command('init')
@click.option('--owner', required=True, help='Factory owner address')
@click.option('--platform-address', 'platform_addresses', multiple=True, required=True,
              help='Platform fee recipient (repeatable or comma-separated)')
@click.option('--platform-fee', type=int, help='Deployment fee (default from configuration)')
@click.option('--fee-policy', type=click.Choice([p.value for p in FeePolicy]),
              help='forward fees immediately or retain them on the factory')
@click.option('--single-implementation', help='Existing single-token implementation address')
@click.option('--multi-implementation', help='Existing multi-token implementation address')
@click.option('--open-edition-implementation', help='Existing open-edition implementation address')
@pass_context
@handle_cli_error
def init_factory(ctx: CLIContext, owner: str, platform_addresses: Tuple[str, ...],
                 platform_fee: Optional[int], fee_policy: Optional[str],
                 single_implementation: Optional[str], multi_implementation: Optional[str],
                 open_edition_implementation: Optional[str]):
    """
    Initialize a new launchpad in the data directory.

    Examples:
        mintpad factory init --owner 0xabc... --platform-address 0xdef... --platform-fee 100
    """
    settings = ctx.config.factory_settings()
    launchpad = ctx.load_factory(required=False)

    launchpad.initialize(
        owner,
        single_implementation,
        multi_implementation,
        parse_addresses(platform_addresses),
        settings.platform_fee if platform_fee is None else platform_fee,
        fee_policy=FeePolicy(fee_policy) if fee_policy else settings.fee_policy,
        collection_settings=settings.collection,
        open_edition_implementation=open_edition_implementation,
    )
    ctx.save_factory(launchpad)
    ctx.output(launchpad.get_stats())


@factory.command('deploy')
@click.option('--caller', required=True, help='Deployer address (pays the platform fee)')
@click.option('--params-file', type=click.Path(exists=True, dir_okay=False),
              help='JSON file with collection parameters (overrides the options below)')
@click.option('--name', help='Collection name')
@click.option('--symbol', help='Collection symbol')
@click.option('--max-supply', type=int, help='Maximum number of units')
@click.option('--base-uri', default='', help='Base URI after reveal')
@click.option('--pre-reveal-uri', help='URI served before reveal (default: base URI)')
@click.option('--owner', help='Collection owner (default: caller)')
@click.option('--sale-recipient', help='Mint proceeds recipient (default: caller)')
@click.option('--royalty-recipient', 'royalty_recipients', multiple=True,
              help='Royalty recipient (repeatable; default: caller)')
@click.option('--royalty-share', 'royalty_shares', type=int, multiple=True,
              help=f'Share per recipient in 1/{SHARE_DENOMINATOR}ths (repeatable)')
@click.option('--royalty-percentage', type=int, default=0,
              help=f'Royalty rate in 1/{SHARE_DENOMINATOR}ths of the sale price')
@click.option('--mint-price', type=int, default=0, help='Default mint price')
@click.option('--variant', type=click.Choice(DEPLOY_VARIANTS), default=CollectionVariant.SINGLE.value)
@click.option('--payment', type=int, help='Amount paid (default: the platform fee)')
@pass_context
@handle_cli_error
def deploy_collection(ctx: CLIContext, caller: str, params_file: Optional[str], name: Optional[str],
                      symbol: Optional[str], max_supply: Optional[int], base_uri: str,
                      pre_reveal_uri: Optional[str], owner: Optional[str],
                      sale_recipient: Optional[str], royalty_recipients: Tuple[str, ...],
                      royalty_shares: Tuple[int, ...], royalty_percentage: int, mint_price: int,
                      variant: str, payment: Optional[int]):
    """
    Deploy a new collection.

    With a single royalty recipient the share defaults to the whole split.

    Examples:
        mintpad factory deploy --caller 0xabc... --name Apes --symbol APE --max-supply 100
        mintpad factory deploy --caller 0xabc... --params-file apes.json --payment 100
    """
    launchpad = ctx.load_factory()

    if params_file:
        try:
            params = json.loads(Path(params_file).read_text())
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {params_file}: {e}") from e
    else:
        if not (name and symbol and max_supply):
            raise click.UsageError("--name, --symbol and --max-supply are required without --params-file")

        recipients = parse_addresses(royalty_recipients) or [caller]
        shares = list(royalty_shares)
        if not shares and len(recipients) == 1:
            shares = [SHARE_DENOMINATOR]

        params = {
            'name': name,
            'symbol': symbol,
            'max_supply': max_supply,
            'base_uri': base_uri,
            'pre_reveal_uri': base_uri if pre_reveal_uri is None else pre_reveal_uri,
            'owner': owner or caller,
            'sale_recipient': sale_recipient or caller,
            'royalty_recipients': recipients,
            'royalty_shares': shares,
            'royalty_percentage': royalty_percentage,
            'mint_price': mint_price,
            'variant': variant,
        }

    address = launchpad.deploy_collection(
        caller, params, launchpad.platform_fee() if payment is None else payment
    )
    ctx.save_factory(launchpad)

    ctx.logger.info(f"Collection deployed at {address}")
    ctx.output(launchpad.get_collection(address).summary())


@factory.command('deploy-open-edition')
@click.option('--caller', required=True, help='Deployer address (pays the platform fee)')
@click.option('--name', required=True, help='Collection name')
@click.option('--symbol', required=True, help='Collection symbol')
@click.option('--base-uri', default='', help='Token base URI')
@click.option('--mint-price', type=int, default=0, help='Price per edition')
@click.option('--recipient', help='Mint proceeds recipient (default: caller)')
@click.option('--duration', type=int, required=True, help='Seconds the edition stays open')
@click.option('--mint-limit', type=int, help='Editions per wallet (default: unlimited)')
@click.option('--owner', help='Collection owner (default: caller)')
@click.option('--payment', type=int, help='Amount paid (default: the platform fee)')
@pass_context
@handle_cli_error
def deploy_open_edition(ctx: CLIContext, caller: str, name: str, symbol: str, base_uri: str,
                        mint_price: int, recipient: Optional[str], duration: int,
                        mint_limit: Optional[int], owner: Optional[str], payment: Optional[int]):
    """
    Deploy an open edition that sells from now for --duration seconds.

    Examples:
        mintpad factory deploy-open-edition --caller 0xabc... --name Moments --symbol MOM \\
            --mint-price 10 --duration 604800
    """
    launchpad = ctx.load_factory()

    address = launchpad.deploy_open_edition(
        caller, name, symbol, base_uri, mint_price, recipient or caller, duration,
        launchpad.platform_fee() if payment is None else payment,
        owner=owner, mint_limit=mint_limit,
    )
    ctx.save_factory(launchpad)

    edition = launchpad.get_collection(address)
    start, end = edition.edition_window()
    ctx.logger.info(f"Open edition deployed at {address}")
    ctx.output({**edition.summary(), 'edition_start': start, 'edition_end': end})


@factory.command('list')
@click.option('--owner', help='Only collections currently owned by this address')
@click.option('--variant', type=click.Choice(VARIANTS), help='Filter by variant')
@pass_context
@handle_cli_error
def list_collections(ctx: CLIContext, owner: Optional[str], variant: Optional[str]):
    """List deployed collections in deployment order."""
    launchpad = ctx.load_factory()

    records = launchpad.deployment_records()
    if owner:
        owned = set(launchpad.collections_by_owner(owner))
        records = [r for r in records if r.address in owned]
    if variant:
        records = [r for r in records if r.variant.value == variant]

    rows = records_as_rows(records)
    for row in rows:
        row['owner'] = launchpad.get_collection(row['address']).owner()
    ctx.output(rows)


@factory.command('fee')
@click.option('--set', 'new_fee', type=int, help='New platform fee (owner only)')
@click.option('--platform-address', 'platform_addresses', multiple=True,
              help='Replace the platform fee recipients (owner only)')
@click.option('--caller', help='Factory owner address, required when changing settings')
@pass_context
@handle_cli_error
def platform_fee(ctx: CLIContext, new_fee: Optional[int], platform_addresses: Tuple[str, ...],
                 caller: Optional[str]):
    """Show or change the platform fee."""
    launchpad = ctx.load_factory()

    if new_fee is not None or platform_addresses:
        if not caller:
            raise click.UsageError("--caller is required to change fee settings")
        if new_fee is not None:
            launchpad.set_platform_fee(caller, new_fee)
        if platform_addresses:
            launchpad.set_platform_addresses(caller, parse_addresses(platform_addresses))
        ctx.save_factory(launchpad)

    ctx.output({
        'platform_fee': launchpad.platform_fee(),
        'fee_policy': launchpad.fee_policy().value,
        'platform_addresses': launchpad.platform_addresses(),
        'retained_fees': launchpad.ledger.balance_of(launchpad.address),
    })


@factory.command('withdraw')
@click.option('--caller', required=True, help='Factory owner address')
@click.option('--recipient', required=True, help='Address receiving the retained fees')
@pass_context
@handle_cli_error
def withdraw_fees(ctx: CLIContext, caller: str, recipient: str):
    """Withdraw fees retained on the factory."""
    launchpad = ctx.load_factory()
    amount = launchpad.withdraw_fees(caller, recipient)
    ctx.save_factory(launchpad)
    ctx.output({'recipient': recipient.lower(), 'amount': amount})


@factory.command('upgrade')
@click.option('--caller', required=True, help='Factory owner address')
@click.option('--variant', type=click.Choice(VARIANTS), required=True)
@click.option('--implementation', help='Address of an already published implementation')
@click.option('--version', help='Publish a new stock implementation with this version label')
@pass_context
@handle_cli_error
def upgrade_implementation(ctx: CLIContext, caller: str, variant: str,
                           implementation: Optional[str], version: Optional[str]):
    """
    Point future deployments of a variant at another implementation.

    Existing collections keep the implementation they were cloned from.
    """
    if bool(implementation) == bool(version):
        raise click.UsageError("Give exactly one of --implementation or --version")

    launchpad = ctx.load_factory()

    if version:
        implementation = launchpad.publish_implementation(caller, CollectionVariant(variant), version).address

    launchpad.upgrade_implementation(caller, CollectionVariant(variant), implementation)
    ctx.save_factory(launchpad)

    ctx.output([
        {
            'address': i.address,
            'variant': i.variant.value,
            'version': i.version,
            'active': launchpad.implementation(i.variant) == i.address,
        }
        for i in launchpad.registry.list_implementations()
    ])
