"""
supplyledger/cli/audit.py

supplyledger audit — journal verification
=========================================

Usage:
    supplyledger audit                          Journal in the ledger home
    supplyledger audit <journal>                Explicit journal file
    supplyledger audit --format json            Machine-readable JSON
    supplyledger audit --format compact         One-line pipeline output
    supplyledger audit --export report.json     Export full audit report
    supplyledger audit --quiet                  Exit code only
    supplyledger audit --no-color               Disable ANSI

Exit codes:
    0  Journal fully valid  (sequence + chain + nonces + genesis + signatures)
    1  Journal has violations
    2  Error  (file missing, malformed JSON, schema violation)

CI one-liners:
    supplyledger audit --quiet && echo "clean" || echo "VIOLATED"
    supplyledger audit --format compact >> audit.log
"""

import json
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

import click

from supplyledger.cli.state import EXIT_ERROR, EXIT_OK, EXIT_REJECTED, CliState
from supplyledger.core.audit import AuditSummary, JournalAudit
from supplyledger.core.canonical import canonical_hash
from supplyledger.core.exceptions import SupplyLedgerError


# ── ANSI color ────────────────────────────────────────────────────────────────

class _Color:
    """
    Minimal ANSI color wrapper.
    Auto-disables when not a TTY or --no-color is passed.
    """
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def green(cls, s: str) -> str:
        return f"\033[32m{s}\033[0m" if cls._on else s

    @classmethod
    def red(cls, s: str) -> str:
        return f"\033[31m{s}\033[0m" if cls._on else s

    @classmethod
    def yellow(cls, s: str) -> str:
        return f"\033[33m{s}\033[0m" if cls._on else s

    @classmethod
    def cyan(cls, s: str) -> str:
        return f"\033[36m{s}\033[0m" if cls._on else s

    @classmethod
    def bold(cls, s: str) -> str:
        return f"\033[1m{s}\033[0m" if cls._on else s

    @classmethod
    def dim(cls, s: str) -> str:
        return f"\033[2m{s}\033[0m" if cls._on else s


def _row_ok(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {_Color.green('OK  ')}  {value}"

def _row_fail(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {_Color.red('FAIL')}  {value}"

def _row_info(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}        {_Color.dim(value)}"


# ── Head hash ─────────────────────────────────────────────────────────────────

def _head_hash(audit: JournalAudit) -> Tuple[Optional[str], Optional[int]]:
    """
    The causal_hash the next record would carry: SHA-256 of the JCS
    signing surface of the last record. A commitment to the whole journal,
    suitable for anchoring elsewhere.
    """
    if not audit.records:
        return None, None
    last = audit.records[-1]
    return canonical_hash(last.to_signing_dict()), last.sequence


# ── CLI command ───────────────────────────────────────────────────────────────

@click.command(name="audit")
@click.argument("journal", type=click.Path(dir_okay=False), required=False)
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json", "compact"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default), json (CI/automation), compact (pipelines).",
)
@click.option(
    "--export",
    "export_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="Export full audit report to a JSON file.",
)
@click.option(
    "--trusted-key",
    default=None,
    metavar="HEX",
    help="Public key (hex) every record must be signed by. Defaults to the genesis signer.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable ANSI color output.",
)
@click.pass_obj
def audit_command(
    state:       CliState,
    journal:     Optional[str],
    fmt:         str,
    export_path: Optional[str],
    trusted_key: Optional[str],
    quiet:       bool,
    no_color:    bool,
) -> None:
    """
    Verify a ledger journal: sequence, chain, nonces, genesis, signer, signatures.

    JOURNAL defaults to journal.jsonl in the ledger home.

    \b
    Examples:
      supplyledger audit
      supplyledger audit .supplyledger/journal.jsonl --format json
      supplyledger audit --export report.json
      supplyledger audit --trusted-key 3b6a27bc...
      supplyledger audit --quiet && echo "clean"
    """
    _Color.configure(not no_color)

    journal_path = Path(journal) if journal else state.journal_path()

    if not journal_path.exists():
        _emit_error(f"Journal not found: {journal_path}", fmt, quiet)
        sys.exit(EXIT_ERROR)

    audit   = JournalAudit(trusted_signer=trusted_key)
    t_start = time.perf_counter()

    try:
        audit.load(journal_path)
        summary = audit.verify()
    except (SupplyLedgerError, OSError) as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(EXIT_ERROR)

    elapsed = time.perf_counter() - t_start
    head_hash, head_sequence = _head_hash(audit)
    journal_valid = summary.journal_valid

    if export_path and audit.records:
        try:
            audit.export_json(Path(export_path))
        except (SupplyLedgerError, OSError) as e:
            if not quiet and fmt == "human":
                click.echo(_Color.yellow(f"\n  Export failed: {e}"), err=True)

    if quiet:
        sys.exit(EXIT_OK if journal_valid else EXIT_REJECTED)

    if fmt == "json":
        _output_json(summary, journal_path, elapsed, export_path, head_hash, head_sequence)
    elif fmt == "compact":
        _output_compact(summary, journal_path, elapsed)
    else:
        _output_human(summary, journal_path, elapsed, export_path, head_hash, head_sequence)

    sys.exit(EXIT_OK if journal_valid else EXIT_REJECTED)


# ── Human output ──────────────────────────────────────────────────────────────

def _output_human(
    summary:       AuditSummary,
    journal_path:  Path,
    elapsed:       float,
    export_path:   Optional[str],
    head_hash:     Optional[str],
    head_sequence: Optional[int],
) -> None:
    BAR_HEAVY = "═" * 68
    BAR_LIGHT = "─" * 68

    click.echo()
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo(_Color.bold(  "  SupplyLedger  ·  Journal Audit"))
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo()

    total = summary.total_records
    click.echo(_row_info("Journal",  str(journal_path)))
    click.echo(_row_info("Records",  f"{total:,}"))
    click.echo(_row_info("Admin",    summary.admin or "—"))
    click.echo(_row_info("Products", f"{summary.products:,}"))
    click.echo(_row_info("Signers",  ", ".join(s[:16] + "..." for s in summary.signers_seen) or "—"))
    click.echo()

    by_type = {}
    for v in summary.violations:
        by_type.setdefault(v.violation_type, []).append(v)

    checks = [
        ("Sequence",   "sequence_gap",    f"0 → {total - 1:,}  (no gaps)" if total else "empty journal"),
        ("Chain",      "chain_break",     "intact — all causal hashes valid"),
        ("Nonces",     "duplicate_nonce", "unique"),
        ("Genesis",    "genesis",         "single genesis at sequence 0"),
    ]
    for label, vtype, ok_text in checks:
        if vtype in by_type:
            click.echo(_row_fail(label, _Color.red(f"{len(by_type[vtype])} violation(s)")))
        else:
            click.echo(_row_ok(label, ok_text))

    if summary.invalid_signatures == 0:
        click.echo(_row_ok("Signatures", f"{summary.valid_signatures:,} / {total:,} valid"))
    else:
        click.echo(_row_fail("Signatures",
            f"{summary.valid_signatures:,} valid  "
            + _Color.red(f"{summary.invalid_signatures:,} INVALID")
        ))
    click.echo()

    if summary.first_timestamp:
        click.echo(_row_info("First record", f"{summary.first_timestamp}  " + _Color.dim("[seq 0]")))
    if summary.last_timestamp:
        click.echo(_row_info("Last record",
            f"{summary.last_timestamp}  " + _Color.dim(f"[seq {total - 1:,}]")
        ))
    if head_hash and head_sequence is not None:
        short = head_hash[:16] + "..." + head_hash[-8:]
        click.echo(_row_info("Chain head",
            _Color.cyan(short) + _Color.dim(f"  [seq {head_sequence}]")
        ))

    if summary.record_type_counts:
        counts_str = "  ".join(
            f"{_Color.cyan(k)}: {v:,}"
            for k, v in sorted(summary.record_type_counts.items())
        )
        click.echo(_row_info("Record types", counts_str))

    click.echo(_row_info("Verified", f"{elapsed:.3f}s"))
    if export_path:
        click.echo(_row_info("Exported", export_path))
    click.echo()

    if summary.violations:
        click.echo(f"  {BAR_LIGHT}")
        click.echo(f"  {'Seq':>6}  {'Type':<22}  Detail")
        click.echo(f"  {BAR_LIGHT}")
        for v in summary.violations:
            click.echo(
                f"  {v.at_sequence:>6}  {_Color.yellow(f'{v.violation_type:<22}')}  {v.detail}"
            )
        click.echo(f"  {BAR_LIGHT}")
        click.echo()

    click.echo(f"  {BAR_LIGHT}")
    if summary.journal_valid:
        click.echo(_Color.green(_Color.bold(
            "  VALID  ·  0 violations  ·  journal integrity confirmed"
        )))
    else:
        click.echo(_Color.red(_Color.bold(
            f"  INVALID  ·  {len(summary.violations)} violation(s)  ·  journal integrity compromised"
        )))
    click.echo(f"  {BAR_LIGHT}")
    click.echo()


# ── JSON output ───────────────────────────────────────────────────────────────

def _output_json(
    summary:       AuditSummary,
    journal_path:  Path,
    elapsed:       float,
    export_path:   Optional[str],
    head_hash:     Optional[str],
    head_sequence: Optional[int],
) -> None:
    out = {
        "supplyledger_audit": {
            "journal":             str(journal_path),
            **summary.to_dict(),
            "violation_count":     len(summary.violations),
            "chain_head_hash":     head_hash,
            "chain_head_sequence": head_sequence,
            "elapsed_seconds":     round(elapsed, 3),
            "export_path":         export_path,
        }
    }
    click.echo(json.dumps(out, indent=2))


# ── Compact output ────────────────────────────────────────────────────────────

def _output_compact(summary: AuditSummary, journal_path: Path, elapsed: float) -> None:
    """
    Single-line output for shell pipelines and audit logs.

        VALID    journal.jsonl     42 records  0 violations  0.012s
    """
    status = "VALID" if summary.journal_valid else "INVALID"
    color  = _Color.green if summary.journal_valid else _Color.red
    click.echo(
        color(f"{status:<8}")
        + f"  {journal_path.name:<20}  {summary.total_records:>8,} records  "
        + f"{len(summary.violations)} violations  {elapsed:.3f}s"
    )


# ── Error output ──────────────────────────────────────────────────────────────

def _emit_error(msg: str, fmt: str, quiet: bool) -> None:
    """Emit error in the requested format. Never raises."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({
            "supplyledger_audit": {
                "error":         msg,
                "journal_valid": False,
            }
        }))
    else:
        click.echo(_Color.red(f"\n  ERROR: {msg}\n"), err=True)
