"""
supplyledger/cli/__init__.py

SupplyLedger CLI — root Click command group.

This file is the sole entry point for the `supplyledger` terminal command.
It is registered in pyproject.toml as:

    [project.scripts]
    supplyledger = "supplyledger.cli:cli"

Adding a new command:
    1. Create supplyledger/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

from pathlib import Path
from typing import Optional

import click

from supplyledger.cli.audit import audit_command
from supplyledger.cli.commands import (
    authorize_command,
    history_command,
    init_command,
    participants_command,
    register_command,
    revoke_command,
    show_command,
    stats_command,
    transfer_command,
    update_status_command,
    verify_product_command,
)
from supplyledger.cli.state import CliState


@click.group()
@click.version_option(package_name="supplyledger")
@click.option(
    "--home",
    type=click.Path(file_okay=False),
    default=None,
    metavar="DIR",
    help="Ledger directory (journal + keys). Overrides config and SUPPLYLEDGER_HOME.",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    metavar="FILE",
    help="YAML config file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level for ledger diagnostics on stderr.",
)
@click.pass_context
def cli(
    ctx:         click.Context,
    home:        Optional[str],
    config_file: Optional[str],
    log_level:   Optional[str],
) -> None:
    """
    SupplyLedger — supply-chain product ledger.

    \b
    Commands:
      init            Create a ledger with its admin.
      authorize       Authorize a participant (admin only).
      revoke          Revoke a participant (admin only).
      participants    List authorized participants.
      register        Register a product.
      update-status   Move a product forward.
      transfer        Hand a product to another participant.
      show            Show a product.
      history         Show a product's status history.
      verify-product  Check whether a product exists.
      stats           Ledger counters.
      audit           Verify a journal: chain, signatures, schema.

    \b
    Quick start:
      supplyledger init --admin 0xadmin
      supplyledger authorize 0xfarm --as 0xadmin
      supplyledger register 1001 "Organic Coffee" "Ethiopian Farms" --as 0xfarm
      supplyledger update-status 1001 InTransit "Warehouse A" --as 0xfarm
      supplyledger audit
    """
    ctx.obj = CliState(
        home=        Path(home) if home else None,
        config_file= Path(config_file) if config_file else None,
        log_level=   log_level,
    )


cli.add_command(init_command)
cli.add_command(authorize_command)
cli.add_command(revoke_command)
cli.add_command(participants_command)
cli.add_command(register_command)
cli.add_command(update_status_command)
cli.add_command(transfer_command)
cli.add_command(show_command)
cli.add_command(history_command)
cli.add_command(verify_product_command)
cli.add_command(stats_command)
cli.add_command(audit_command)
