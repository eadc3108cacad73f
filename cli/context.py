"""
Shared CLI context, output formatting and error handling for Mintpad commands.
"""

import functools
import json
import logging
import sys
import traceback
from typing import Any, Dict, List, Optional

import click
import yaml
from tabulate import tabulate

from collection.clock import SystemClock
from collection.events import EventLog
from collection.exceptions import LaunchpadError, NotInitializedError
from factory.manager import CollectionFactory
from factory.storage import LaunchpadStorage

from .config import ConfigurationManager


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.profile: Optional[str] = None
        self.output_format: Optional[str] = None
        self.data_dir: Optional[str] = None
        self.verbose: int = 0
        self.config: Optional[ConfigurationManager] = None
        self.logger: logging.Logger = logging.getLogger('mintpad-cli')
        self.clock = SystemClock()
        self.events = EventLog()
        self._storage: Optional[LaunchpadStorage] = None

    def setup_logging(self):
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }
        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)

        # Library loggers live under 'mintpad.*', the CLI under 'mintpad-cli'.
        for name in ('mintpad', 'mintpad-cli'):
            logger = logging.getLogger(name)
            logger.handlers = [handler]
            logger.setLevel(level)

    def load_config(self):
        self.config = ConfigurationManager(self.config_file, self.profile)
        errors = self.config.validate()
        if errors:
            raise LaunchpadError("Invalid configuration: " + "; ".join(errors))

        if self.output_format is None:
            self.output_format = self.config.get('cli.output_format', 'table')
        self.logger.debug(f"Configuration sources: {', '.join(self.config.get_sources())}")

    @property
    def storage(self) -> LaunchpadStorage:
        if self._storage is None:
            data_dir = self.data_dir or self.config.get('storage.data_dir')
            self._storage = LaunchpadStorage(data_dir, backup_count=self.config.get('storage.backup_count', 5))
        return self._storage

    def load_factory(self, required: bool = True) -> Optional[CollectionFactory]:
        """Load the stored launchpad; a fresh factory if none exists and not required."""
        factory = self.storage.load(clock=self.clock, events=self.events)
        if factory is None:
            if required:
                raise NotInitializedError(
                    f"No launchpad found in {self.storage.data_dir}; run 'mintpad factory init' first"
                )
            factory = CollectionFactory(clock=self.clock, events=self.events)
        return factory

    def save_factory(self, factory: CollectionFactory) -> str:
        checksum = self.storage.save(factory)
        self.logger.debug(f"Launchpad saved (checksum {checksum[:16]})")
        return checksum

    def output(self, data: Any, format_override: Optional[str] = None):
        """Output data in specified format."""
        format_type = format_override or self.output_format or 'table'

        if format_type == "json":
            click.echo(json.dumps(data, indent=2, default=str))
        elif format_type == "yaml":
            click.echo(yaml.safe_dump(_plain(data), default_flow_style=False, sort_keys=False))
        else:
            click.echo(self._format_table(data))

    def _format_table(self, data: Any) -> str:
        if isinstance(data, dict):
            return tabulate([[k, _display(v)] for k, v in data.items()], tablefmt='plain')
        if isinstance(data, list):
            if not data:
                return "No data available"
            if isinstance(data[0], dict):
                headers = list(data[0].keys())
                rows = [[_display(item.get(h, '')) for h in headers] for item in data]
                return tabulate(rows, headers=headers, tablefmt='grid')
            return "\n".join(str(item) for item in data)
        return str(data)


def _display(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _plain(data: Any) -> Any:
    """Round-trip through JSON so YAML only sees plain types."""
    return json.loads(json.dumps(data, default=str))


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator to report launchpad errors as 'Error: ...' with exit code 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except KeyboardInterrupt:
            click.echo("\nOperation cancelled by user.", err=True)
            sys.exit(130)
        except LaunchpadError as e:
            ctx = click.get_current_context().find_object(CLIContext)
            click.echo(f"Error: {e}", err=True)
            if ctx and ctx.verbose >= 2:
                click.echo(traceback.format_exc(), err=True)
            else:
                click.echo("Use -vv for detailed error information.", err=True)
            sys.exit(1)

    return wrapper


def parse_addresses(values: List[str]) -> List[str]:
    """Accept repeated options as well as comma-separated lists."""
    addresses = []
    for value in values:
        addresses.extend(a.strip() for a in value.split(',') if a.strip())
    return addresses


def records_as_rows(records: List[Any]) -> List[Dict[str, Any]]:
    return [record.model_dump(mode='json') for record in records]
