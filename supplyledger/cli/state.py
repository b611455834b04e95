"""
Shared state for CLI commands: resolved config and the lazily opened ledger.
"""

import json
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import click

from supplyledger.core.config import LedgerConfig, load_config
from supplyledger.core.exceptions import SupplyLedgerError
from supplyledger.core.journal import FileJournal
from supplyledger.core.log import configure_logging
from supplyledger.runtime.context import RuntimeContext


EXIT_OK       = 0
EXIT_REJECTED = 1
EXIT_ERROR    = 2


@dataclass
class CliState:
    home:        Optional[Path] = None
    config_file: Optional[Path] = None
    log_level:   Optional[str]  = None
    _config:     Optional[LedgerConfig]   = field(default=None, repr=False)
    _context:    Optional[RuntimeContext] = field(default=None, repr=False)

    def config(self, **overrides: Any) -> LedgerConfig:
        """Defaults < YAML < environment < command-line flags."""
        if self._config is None:
            try:
                config = load_config(self.config_file)
                updates: Dict[str, Any] = {}
                if self.home is not None:
                    updates["home"] = self.home
                if self.log_level is not None:
                    updates["log_level"] = self.log_level
                config = replace(config, **updates) if updates else config
            except SupplyLedgerError as exc:
                fail(str(exc), EXIT_ERROR)
            configure_logging(config.log_level)
            self._config = config
        if overrides:
            try:
                return replace(self._config, **overrides)
            except SupplyLedgerError as exc:
                fail(str(exc), EXIT_ERROR)
        return self._config

    def journal_path(self, config: Optional[LedgerConfig] = None) -> Path:
        config = config or self.config()
        return config.journal_dir / FileJournal.FILENAME

    def context(self) -> RuntimeContext:
        """Open the existing ledger. Exit 2 if there is none."""
        if self._context is None:
            config = self.config()
            path = self.journal_path(config)
            if not path.exists() or path.stat().st_size == 0:
                fail(
                    f"No ledger at {config.home}. Run 'supplyledger init --admin ID' first.",
                    EXIT_ERROR,
                )
            try:
                self._context = RuntimeContext.from_config(config)
            except SupplyLedgerError as exc:
                fail(str(exc), EXIT_ERROR)
        return self._context


def fail(message: str, code: int) -> None:
    """Print an error to stderr and exit with code. Never returns."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))
