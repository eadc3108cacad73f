#!/usr/bin/env python3
"""
Ledger Commands for Mintpad CLI

Fund accounts and inspect balances of the launchpad's value ledger.
"""

from typing import Tuple

import click

from cli.context import CLIContext, handle_cli_error, pass_context


@click.group()
@pass_context
def ledger(ctx: CLIContext):
    """
    Value ledger commands.
    """
    ctx.logger.debug("Ledger command group invoked")


@ledger.command('deposit')
@click.argument('address')
@click.argument('amount', type=click.IntRange(min=0))
@pass_context
@handle_cli_error
def deposit(ctx: CLIContext, address: str, amount: int):
    """Credit AMOUNT to ADDRESS."""
    launchpad = ctx.load_factory()
    balance = launchpad.ledger.deposit(address, amount)
    ctx.save_factory(launchpad)
    ctx.output({'address': address.lower(), 'balance': balance})


@ledger.command('balance')
@click.argument('addresses', nargs=-1)
@pass_context
@handle_cli_error
def balance(ctx: CLIContext, addresses: Tuple[str, ...]):
    """Show balances of ADDRESSES, or every non-zero balance."""
    launchpad = ctx.load_factory()

    if addresses:
        rows = [{'address': a.lower(), 'balance': launchpad.ledger.balance_of(a)} for a in addresses]
    else:
        rows = [{'address': a, 'balance': b} for a, b in sorted(launchpad.ledger.balances().items())]
    ctx.output(rows)
