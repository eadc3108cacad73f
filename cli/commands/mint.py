#!/usr/bin/env python3
"""
Mint Command for Mintpad CLI
"""

from typing import Optional

import click

from cli.context import CLIContext, handle_cli_error, pass_context


@click.command('mint')
@click.argument('address')
@click.option('--caller', required=True, help='Minting wallet (pays from its ledger balance)')
@click.option('--phase', 'phase_index', type=int, required=True, help='Phase to mint in')
@click.option('--token-id', type=int, required=True, help='Token id to mint')
@click.option('--quantity', type=int, default=1, help='Units to mint (multi-token collections)')
@click.option('--payment', type=int, help='Amount paid (default: phase price x quantity)')
@pass_context
@handle_cli_error
def mint(ctx: CLIContext, address: str, caller: str, phase_index: int, token_id: int,
         quantity: int, payment: Optional[int]):
    """
    Mint tokens from a collection during one of its phases.

    Examples:
        mintpad mint 0x123... --caller 0x456... --phase 0 --token-id 7
        mintpad mint 0x123... --caller 0x456... --phase 1 --token-id 1 --quantity 5
    """
    launchpad = ctx.load_factory()
    target = launchpad.get_collection(address)

    if payment is None:
        price = target.get_phase(phase_index)[0]
        payment = price * quantity

    ctx.logger.info(f"Minting {quantity} of token {token_id} from {address} in phase {phase_index}")
    receipt = target.mint(caller, phase_index, token_id, payment, quantity=quantity)
    ctx.save_factory(launchpad)

    ctx.output(receipt.to_dict())
