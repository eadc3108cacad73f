#!/usr/bin/env python3
"""
Collection Commands for Mintpad CLI

Inspect deployed collections and administer their sale phases, whitelists,
reveal state and royalties.
"""

from typing import Optional, Tuple

import click

from cli.context import CLIContext, handle_cli_error, parse_addresses, pass_context


@click.group()
@pass_context
def collection(ctx: CLIContext):
    """
    Collection inspection and administration.
    """
    ctx.logger.debug("Collection command group invoked")


@collection.command('info')
@click.argument('address')
@pass_context
@handle_cli_error
def collection_info(ctx: CLIContext, address: str):
    """Show a collection's configuration and supply."""
    target = ctx.load_factory().get_collection(address)

    info = target.summary()
    info['mint_price'] = target.mint_price()
    info['active_phases'] = target.active_phase_indices()
    ctx.output(info)


@collection.command('add-phase')
@click.argument('address')
@click.option('--caller', required=True, help='Collection owner address')
@click.option('--price', type=int, required=True, help='Price per unit')
@click.option('--limit', type=int, required=True, help='Units per wallet in this phase')
@click.option('--start', type=int, required=True, help='Start time (unix seconds, inclusive)')
@click.option('--end', type=int, required=True, help='End time (unix seconds, exclusive)')
@click.option('--supply', type=int, help='Collection-wide cap while this phase sells (default: max supply)')
@click.option('--whitelist/--no-whitelist', default=False, help='Restrict the phase to whitelisted wallets')
@pass_context
@handle_cli_error
def add_phase(ctx: CLIContext, address: str, caller: str, price: int, limit: int, start: int,
              end: int, supply: Optional[int], whitelist: bool):
    """
    Append a sale phase.

    Examples:
        mintpad collection add-phase 0x123... --caller 0xabc... --price 10 --limit 2 --start 0 --end 2000000000
    """
    launchpad = ctx.load_factory()
    target = launchpad.get_collection(address)

    index = target.add_mint_phase(caller, price, limit, start, end,
                                  whitelist_enabled=whitelist, supply=supply)
    ctx.save_factory(launchpad)
    ctx.output(_phase_row(target, index))


@collection.command('set-phase')
@click.argument('address')
@click.argument('phase_index', type=int)
@click.option('--caller', required=True, help='Collection owner address')
@click.option('--price', type=int, help='New price per unit')
@click.option('--limit', type=int, help='New per-wallet limit')
@click.option('--start', type=int, help='New start time')
@click.option('--end', type=int, help='New end time')
@click.option('--supply', type=int, help='New phase supply')
@click.option('--whitelist/--no-whitelist', default=None, help='Change whitelist gating')
@pass_context
@handle_cli_error
def set_phase(ctx: CLIContext, address: str, phase_index: int, caller: str, price: Optional[int],
              limit: Optional[int], start: Optional[int], end: Optional[int],
              supply: Optional[int], whitelist: Optional[bool]):
    """Change any subset of an existing phase's settings."""
    launchpad = ctx.load_factory()
    target = launchpad.get_collection(address)

    target.set_mint_phase_settings(
        caller, phase_index,
        mint_price=price,
        mint_limit=limit,
        mint_start_time=start,
        mint_end_time=end,
        supply=supply,
        whitelist_enabled=whitelist,
    )
    ctx.save_factory(launchpad)
    ctx.output(_phase_row(target, phase_index))


@collection.command('phases')
@click.argument('address')
@pass_context
@handle_cli_error
def list_phases(ctx: CLIContext, address: str):
    """List every sale phase of a collection."""
    target = ctx.load_factory().get_collection(address)
    ctx.output([_phase_row(target, i) for i in range(target.get_total_phases())])


@collection.command('whitelist')
@click.argument('address')
@click.option('--caller', help='Collection owner address, required when changing the whitelist')
@click.option('--add', 'added', multiple=True, help='Addresses to whitelist (repeatable or comma-separated)')
@click.option('--remove', 'removed', multiple=True, help='Addresses to remove (repeatable or comma-separated)')
@pass_context
@handle_cli_error
def whitelist(ctx: CLIContext, address: str, caller: Optional[str],
              added: Tuple[str, ...], removed: Tuple[str, ...]):
    """Show or change whitelist membership."""
    launchpad = ctx.load_factory()
    target = launchpad.get_collection(address)

    if added or removed:
        if not caller:
            raise click.UsageError("--caller is required to change the whitelist")
        if added:
            target.set_whitelist(caller, parse_addresses(added), True)
        if removed:
            target.set_whitelist(caller, parse_addresses(removed), False)
        ctx.save_factory(launchpad)

    ctx.output(target.whitelist_members())


@collection.command('reveal')
@click.argument('address')
@click.option('--caller', required=True, help='Collection owner address')
@click.option('--base-uri', help='Replace the base URI while revealing')
@pass_context
@handle_cli_error
def reveal(ctx: CLIContext, address: str, caller: str, base_uri: Optional[str]):
    """Switch token URIs from the pre-reveal URI to base URI + token id."""
    launchpad = ctx.load_factory()
    target = launchpad.get_collection(address)

    target.reveal(caller, base_uri)
    ctx.save_factory(launchpad)
    ctx.output(target.summary())


@collection.command('royalty')
@click.argument('address')
@click.option('--sale-price', type=int, required=True, help='Secondary sale price')
@click.option('--token-id', type=int, default=0, help='Token being sold')
@pass_context
@handle_cli_error
def royalty(ctx: CLIContext, address: str, sale_price: int, token_id: int):
    """Show the royalty owed on a sale and how it splits."""
    target = ctx.load_factory().get_collection(address)

    receiver, amount = target.royalty_info(token_id, sale_price)
    ctx.logger.info(f"Royalty on {sale_price}: {amount} to {receiver}")
    ctx.output([
        {'recipient': recipient, 'amount': share}
        for recipient, share in target.royalty_distribution(sale_price)
    ])


@collection.command('uri')
@click.argument('address')
@click.argument('token_id', type=int)
@pass_context
@handle_cli_error
def token_uri(ctx: CLIContext, address: str, token_id: int):
    """Show the metadata URI of a token."""
    target = ctx.load_factory().get_collection(address)
    ctx.output({'token_id': token_id, 'uri': target.token_uri(token_id)})


def _phase_row(target, index: int) -> dict:
    price, limit, start, end, supply, whitelist_enabled = target.get_phase(index)
    return {
        'index': index,
        'price': price,
        'limit': limit,
        'start': start,
        'end': end,
        'supply': supply,
        'whitelist': whitelist_enabled,
        'active': index in target.active_phase_indices(),
    }
