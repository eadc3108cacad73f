"""
Mintpad CLI Commands Package

Command groups for the Mintpad launchpad CLI.
"""

__all__ = ['factory', 'collection', 'mint', 'ledger', 'config']
