"""
supplyledger/cli/commands.py

Ledger commands: participants, products, reads.

Every mutating command takes the acting identity with --as. The CLI does
not authenticate it; it is a local tool for whoever holds the ledger
directory and its signing key.

Exit codes:
    0  Success
    1  Operation rejected by the ledger (NotAuthorized, InvalidProgression, ...)
    2  Error (no ledger, bad config, corrupt journal)
"""

from typing import Any, Callable, Dict, List, Optional

import click

from supplyledger.cli.state import (
    EXIT_ERROR,
    EXIT_REJECTED,
    CliState,
    echo_json,
    fail,
)
from supplyledger.core.exceptions import LedgerRejection, SupplyLedgerError
from supplyledger.core.ledger import ProductLedger
from supplyledger.core.models import Product, StatusHistoryEntry
from supplyledger.runtime.context import RuntimeContext


pass_state = click.make_pass_decorator(CliState)

_as_option = click.option(
    "--as", "caller",
    required=True,
    metavar="ID",
    help="Identity performing the operation.",
)

_format_option = click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format.",
)


def _run(state: CliState, op: Callable[[ProductLedger], Any]) -> Any:
    """Run op against the ledger, mapping failures to exit codes."""
    ledger = state.context().ledger
    try:
        return op(ledger)
    except LedgerRejection as exc:
        fail(f"{exc.code}: {exc}", EXIT_REJECTED)
    except (SupplyLedgerError, ValueError) as exc:
        fail(str(exc), EXIT_ERROR)


# ── Rendering ─────────────────────────────────────────────────────────────────

def _product_dict(ledger: ProductLedger, product: Product) -> Dict[str, Any]:
    data = product.to_dict()
    data["status_name"] = ledger.status_scale.name_of(product.current_status)
    return data


def _history_dicts(
    ledger:  ProductLedger,
    history: List[StatusHistoryEntry],
) -> List[Dict[str, Any]]:
    out = []
    for entry in history:
        data = entry.to_dict()
        data["status_name"] = ledger.status_scale.name_of(entry.status)
        out.append(data)
    return out


def _echo_product(ledger: ProductLedger, product: Product) -> None:
    status = ledger.status_scale.name_of(product.current_status)
    click.echo(f"  Product {product.product_id}  ·  {product.product_name}")
    click.echo(f"    {'manufacturer':<14}{product.manufacturer_name}")
    click.echo(f"    {'status':<14}{status} ({product.current_status})")
    click.echo(f"    {'owner':<14}{product.current_owner}")
    click.echo(f"    {'registered':<14}{product.registered_at} by {product.registered_by}")


# ── Setup ─────────────────────────────────────────────────────────────────────

@click.command(name="init")
@click.option("--admin", required=True, metavar="ID", help="Admin identity of the new ledger.")
@click.option(
    "--statuses",
    default=None,
    metavar="A,B,C",
    help="Comma-separated stage names, first to last. Default Manufactured,InTransit,Delivered.",
)
@click.option(
    "--require-owner",
    is_flag=True,
    default=False,
    help="Only the current owner may update a product's status.",
)
@pass_state
def init_command(
    state:         CliState,
    admin:         str,
    statuses:      Optional[str],
    require_owner: bool,
) -> None:
    """Create a new ledger in the home directory."""
    overrides: Dict[str, Any] = {"admin": admin}
    if statuses is not None:
        overrides["statuses"] = [s.strip() for s in statuses.split(",") if s.strip()]
    if require_owner:
        overrides["require_owner_for_status"] = True

    config = state.config(**overrides)
    journal_path = state.journal_path(config)
    if journal_path.exists() and journal_path.stat().st_size > 0:
        fail(f"Ledger already initialised at {config.home}", EXIT_ERROR)

    try:
        context = RuntimeContext.from_config(config)
    except SupplyLedgerError as exc:
        fail(str(exc), EXIT_ERROR)

    ledger = context.ledger
    click.echo(f"Ledger initialised at {config.home}")
    click.echo(f"  {'admin':<10}{ledger.admin}")
    click.echo(f"  {'stages':<10}{' → '.join(ledger.status_scale.names)}")
    click.echo(f"  {'signer':<10}{context.key_manager.public_key_hex}")


# ── Participants ──────────────────────────────────────────────────────────────

@click.command(name="authorize")
@click.argument("target")
@_as_option
@pass_state
def authorize_command(state: CliState, target: str, caller: str) -> None:
    """Authorize TARGET as a participant (admin only)."""
    _run(state, lambda ledger: ledger.authorize_participant(caller, target))
    click.echo(f"Authorized {target}")


@click.command(name="revoke")
@click.argument("target")
@_as_option
@pass_state
def revoke_command(state: CliState, target: str, caller: str) -> None:
    """Revoke TARGET's authorization (admin only)."""
    _run(state, lambda ledger: ledger.revoke_participant(caller, target))
    click.echo(f"Revoked {target}")


@click.command(name="participants")
@_format_option
@pass_state
def participants_command(state: CliState, fmt: str) -> None:
    """List currently authorized participants."""
    ledger = state.context().ledger
    members = ledger.participants()
    if fmt == "json":
        echo_json({"admin": ledger.admin, "participants": members})
        return
    for identity in members:
        suffix = "  (admin)" if identity == ledger.admin else ""
        click.echo(f"{identity}{suffix}")


# ── Products ──────────────────────────────────────────────────────────────────

@click.command(name="register")
@click.argument("product_id", type=int)
@click.argument("name")
@click.argument("manufacturer")
@_as_option
@click.option("--location", default=None, help="Initial location. Default: the manufacturer name.")
@pass_state
def register_command(
    state:        CliState,
    product_id:   int,
    name:         str,
    manufacturer: str,
    caller:       str,
    location:     Optional[str],
) -> None:
    """Register product PRODUCT_ID, owned by the caller."""
    product = _run(
        state,
        lambda ledger: ledger.register_product(caller, product_id, name, manufacturer, location),
    )
    click.echo(f"Registered product {product.product_id} ({product.product_name})")


@click.command(name="update-status")
@click.argument("product_id", type=int)
@click.argument("status")
@click.argument("location")
@_as_option
@pass_state
def update_status_command(
    state:      CliState,
    product_id: int,
    status:     str,
    location:   str,
    caller:     str,
) -> None:
    """Move PRODUCT_ID forward to STATUS (stage name or ordinal) at LOCATION."""
    ledger  = state.context().ledger
    product = _run(
        state,
        lambda ledger: ledger.update_status(caller, product_id, status, location),
    )
    click.echo(
        f"Product {product.product_id} is now "
        f"{ledger.status_scale.name_of(product.current_status)} at {location}"
    )


@click.command(name="transfer")
@click.argument("product_id", type=int)
@click.argument("new_owner")
@_as_option
@pass_state
def transfer_command(state: CliState, product_id: int, new_owner: str, caller: str) -> None:
    """Transfer PRODUCT_ID to NEW_OWNER. Current owner only."""
    product = _run(
        state,
        lambda ledger: ledger.transfer_ownership(caller, product_id, new_owner),
    )
    click.echo(f"Product {product.product_id} transferred to {product.current_owner}")


# ── Reads ─────────────────────────────────────────────────────────────────────

@click.command(name="show")
@click.argument("product_id", type=int)
@_format_option
@pass_state
def show_command(state: CliState, product_id: int, fmt: str) -> None:
    """Show PRODUCT_ID."""
    ledger  = state.context().ledger
    product = _run(state, lambda ledger: ledger.get_product(product_id))
    if fmt == "json":
        echo_json(_product_dict(ledger, product))
    else:
        _echo_product(ledger, product)


@click.command(name="history")
@click.argument("product_id", type=int)
@_format_option
@pass_state
def history_command(state: CliState, product_id: int, fmt: str) -> None:
    """Show every status change of PRODUCT_ID, oldest first."""
    ledger  = state.context().ledger
    history = _run(state, lambda ledger: ledger.get_product_history(product_id))
    rows    = _history_dicts(ledger, history)
    if fmt == "json":
        echo_json({"product_id": product_id, "history": rows})
        return
    for i, row in enumerate(rows):
        click.echo(
            f"  {i:>3}  {row['timestamp']}  {row['status_name']:<14}"
            f"{row['location']:<24}{row['actor']}"
        )


@click.command(name="verify-product")
@click.argument("product_id", type=int)
@_format_option
@pass_state
def verify_product_command(state: CliState, product_id: int, fmt: str) -> None:
    """Check whether PRODUCT_ID is registered. Never fails on unknown ids."""
    ledger = state.context().ledger
    exists, name, status = ledger.verify_product(product_id)
    if fmt == "json":
        echo_json({
            "product_id": product_id,
            "exists":     exists,
            "name":       name,
            "status":     status,
        })
        return
    if exists:
        click.echo(f"{product_id}  registered  {name}  {ledger.status_scale.name_of(status)}")
    else:
        click.echo(f"{product_id}  not registered")


@click.command(name="stats")
@_format_option
@pass_state
def stats_command(state: CliState, fmt: str) -> None:
    """Ledger counters."""
    stats = state.context().ledger.get_stats()
    if fmt == "json":
        echo_json(stats)
        return
    click.echo(f"  {'admin':<16}{stats['admin']}")
    click.echo(f"  {'products':<16}{stats['total_products']}")
    click.echo(f"  {'participants':<16}{stats['participants']}")
    click.echo(f"  {'journal records':<16}{stats['journal_records']}")
    for stage, count in stats["by_stage"].items():
        click.echo(f"  {stage:<16}{count}")
