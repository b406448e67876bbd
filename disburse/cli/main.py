"""
disburse.cli.main
=================

`disburse` - read-only command-line views of a deployed disbursement system.

Examples
--------
    $ disburse --rpc http://127.0.0.1:8680 params
    $ disburse --factory 1001 schemes
    $ disburse --factory 1001 scheme 3
    $ disburse --factory 1001 beneficiary 3 dsb1...
    $ disburse --treasury 1002 student dsb1...
    $ disburse --identity 1003 identity dsb1...
    $ disburse --factory 1001 history --min-round 100

Configuration
-------------
Flags override the DISBURSE_* environment (see :class:`disburse.config.DisburseConfig`).
No command here signs or submits anything.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Optional

import click
import typer

from ..config import DisburseConfig
from ..contracts.identity import IdentityRegistryClient
from ..contracts.milestone_treasury import MilestoneTreasuryClient
from ..contracts.scheme_factory import SchemeFactoryClient
from ..errors import DisburseError
from ..ledger.http import HttpLedgerClient
from ..logging import configure as configure_logging
from ..version import __version__ as SDK_VERSION

app = typer.Typer(
    name="disburse",
    help="Public benefit disbursement ledger: inspect schemes, beneficiaries and identities.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main"]


def _jsonable(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return _jsonable(asdict(obj))
    if isinstance(obj, Enum):
        return obj.name
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, dict):
        return {str(k): _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return obj


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(_jsonable(obj), indent=2, ensure_ascii=False))


@app.callback()
def _root(
    ctx: typer.Context,
    rpc: Optional[str] = typer.Option(None, "--rpc", help="Ledger JSON-RPC URL."),
    factory: Optional[int] = typer.Option(None, "--factory", help="Scheme factory application id."),
    treasury: Optional[int] = typer.Option(None, "--treasury", help="Milestone treasury application id."),
    identity: Optional[int] = typer.Option(None, "--identity", help="Identity registry application id."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="HTTP timeout in seconds."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for SDK diagnostics."),
) -> None:
    """Resolve configuration from flags over environment."""
    configure_logging(level=log_level)
    overrides = {
        "rpc_url": rpc,
        "factory_app_id": factory,
        "treasury_app_id": treasury,
        "identity_app_id": identity,
        "request_timeout": timeout,
    }
    ctx.obj = DisburseConfig.with_overrides(**{k: v for k, v in overrides.items() if v is not None})


def _ledger(ctx: typer.Context) -> HttpLedgerClient:
    return HttpLedgerClient.from_config(ctx.obj)


def _factory(ctx: typer.Context) -> SchemeFactoryClient:
    cfg: DisburseConfig = ctx.obj
    if cfg.factory_app_id is None:
        raise typer.BadParameter("factory application id required (--factory or DISBURSE_FACTORY_APP_ID)")
    return SchemeFactoryClient(_ledger(ctx), None, app_id=cfg.factory_app_id, config=cfg)


@app.command("version")
def version() -> None:
    """Print the SDK version."""
    typer.echo(f"disburse {SDK_VERSION}")


@app.command("params")
def params(ctx: typer.Context) -> None:
    """Current fee and validity parameters."""
    _print_json(_ledger(ctx).suggested_params())


@app.command("schemes")
def schemes(ctx: typer.Context) -> None:
    """List every scheme with its funding and utilization."""
    rows = [
        {**_jsonable(s), "status": s.status_label, "remaining": s.remaining, "utilization": s.utilization}
        for s in _factory(ctx).list_schemes()
    ]
    _print_json(rows)


@app.command("scheme")
def scheme(ctx: typer.Context, scheme_id: int = typer.Argument(..., help="Scheme id.")) -> None:
    """One scheme record."""
    found = _factory(ctx).get_scheme(scheme_id)
    if found is None:
        typer.echo(f"scheme {scheme_id} not found", err=True)
        raise typer.Exit(code=2)
    _print_json(found)


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Factory totals."""
    _print_json(_factory(ctx).factory_stats())


@app.command("beneficiary")
def beneficiary(
    ctx: typer.Context,
    scheme_id: int = typer.Argument(..., help="Scheme id."),
    address: str = typer.Argument(..., help="Beneficiary address (dsb1...)."),
) -> None:
    """Registration status of one beneficiary."""
    found = _factory(ctx).get_beneficiary(scheme_id, address)
    if found is None:
        typer.echo("beneficiary not registered", err=True)
        raise typer.Exit(code=2)
    _print_json({**_jsonable(found), "status_label": found.status.label})


@app.command("student")
def student(ctx: typer.Context, address: str = typer.Argument(..., help="Student address.")) -> None:
    """Milestone treasury record of a student."""
    cfg: DisburseConfig = ctx.obj
    if cfg.treasury_app_id is None:
        raise typer.BadParameter("treasury application id required (--treasury or DISBURSE_TREASURY_APP_ID)")
    client = MilestoneTreasuryClient(_ledger(ctx), None, app_id=cfg.treasury_app_id, config=cfg)
    _print_json({"treasury": client.treasury_state(), "student": client.student_record(address)})


@app.command("identity")
def identity(ctx: typer.Context, address: str = typer.Argument(..., help="Citizen address.")) -> None:
    """Identity, KYC level and eligibility of a citizen."""
    cfg: DisburseConfig = ctx.obj
    if cfg.identity_app_id is None:
        raise typer.BadParameter("identity application id required (--identity or DISBURSE_IDENTITY_APP_ID)")
    client = IdentityRegistryClient(_ledger(ctx), None, app_id=cfg.identity_app_id, config=cfg)
    ident = client.get_identity(address)
    if ident is None:
        _print_json({"identity": None})
        return
    _print_json(
        {
            **_jsonable(ident),
            "kyc_label": ident.kyc_level.label,
            "eligibility": ident.eligibility.labels(),
        }
    )


@app.command("history")
def history(
    ctx: typer.Context,
    min_round: Optional[int] = typer.Option(None, "--min-round", help="Only calls confirmed at or after this round."),
    limit: int = typer.Option(50, "--limit", help="Maximum number of entries."),
) -> None:
    """Recent factory calls with decoded methods and events."""
    _print_json(_factory(ctx).poll_transactions(min_round=min_round, limit=limit))


def main(argv: Optional[list[str]] = None) -> int:
    """Run the CLI and return an exit code."""
    try:
        rv = app(prog_name="disburse", standalone_mode=False, args=argv)
    except click.exceptions.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        typer.echo("aborted", err=True)
        return 1
    except typer.Exit as e:
        return int(e.exit_code)
    except DisburseError as e:
        typer.echo(f"error: {e}", err=True)
        return 1
    return rv if isinstance(rv, int) else 0
