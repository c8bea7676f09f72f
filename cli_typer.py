"""
PassPay CLI (Typer)
===================
Read-only command-line interface using Typer + Rich.

Nothing here signs or submits; it inspects ledger state and the output of
the pure builders.

Commands:
    python cli_typer.py balance <address>
    python cli_typer.py token-balance <token-account>
    python cli_typer.py stakes <owner>
    python cli_typer.py validators [--limit N]
    python cli_typer.py derive <base> <seed>
    python cli_typer.py decompose <base64-or-file>
    python cli_typer.py explorer <signature>
"""

import asyncio
import os
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from config.settings import Settings
from passpay.execution.address_derivation import SeedSpec, derive_address
from passpay.execution.errors import PassPayError
from passpay.execution.instruction_factory import LAMPORTS_PER_SOL, STAKE_PROGRAM_ID
from passpay.execution.transaction_executor import NetworkMode, explorer_url
from passpay.execution.versioned_decoder import VersionedTransactionDecomposer, decode_envelope
from passpay.shared.infrastructure.ledger_facade import LedgerAccessFacade

app = typer.Typer(
    name="passpay",
    help="PassPay - Solana transaction construction & ledger inspection",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def _run_with_ledger(coro_fn, rpc_url: Optional[str]):
    """Run ``coro_fn(ledger)`` on a fresh facade and close it afterwards."""
    async def runner():
        client = AsyncClient(rpc_url or Settings.RPC_URL, commitment=Commitment(Settings.RPC_COMMITMENT))
        ledger = LedgerAccessFacade(client=client)
        try:
            return await coro_fn(ledger)
        finally:
            await ledger.close()

    try:
        return asyncio.run(runner())
    except PassPayError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)


RPC_OPTION = typer.Option(None, "--rpc", help="RPC endpoint (default Settings.RPC_URL)")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: BALANCE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def balance(
    address: str = typer.Argument(..., help="Wallet address"),
    rpc: Optional[str] = RPC_OPTION,
):
    """
    Show the native SOL balance and the fee-token (USDC) balance of an address.

    \b
    Examples:
        python cli_typer.py balance 7xKX...
    """
    async def read(ledger):
        return await ledger.get_balance(address), await ledger.get_associated_token_balance(address)

    lamports, fee_token = _run_with_ledger(read, rpc)
    console.print(f"[cyan]{address}[/cyan]: [bold green]{lamports / LAMPORTS_PER_SOL:.9f} SOL[/bold green] ({lamports} lamports)")
    fee_amount = fee_token.ui_amount if fee_token else 0
    console.print(f"[cyan]{Settings.FEE_TOKEN_SYMBOL}[/cyan]: [bold green]{fee_amount}[/bold green]")


@app.command("token-balance")
def token_balance(
    token_account: str = typer.Argument(..., help="SPL token account address"),
    rpc: Optional[str] = RPC_OPTION,
):
    """Show an SPL token account balance (or report that it does not exist)."""
    result = _run_with_ledger(lambda ledger: ledger.get_token_balance(token_account), rpc)
    if result is None:
        console.print(f"[yellow]⚠️  Token account {token_account} does not exist[/yellow]")
        raise typer.Exit(0)
    console.print(f"[cyan]{token_account}[/cyan]: [bold green]{result.ui_amount}[/bold green] ({result.amount} base units, {result.decimals} decimals)")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: STAKES
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def stakes(
    owner: str = typer.Argument(..., help="Staker authority (wallet) address"),
    rpc: Optional[str] = RPC_OPTION,
):
    """List stake accounts whose staker authority is OWNER."""
    accounts = _run_with_ledger(lambda ledger: ledger.get_stake_accounts(owner), rpc)

    if not accounts:
        console.print("[yellow]No stake accounts found.[/yellow]")
        return

    table = Table(title=f"Stake accounts for {owner}")
    table.add_column("Address", style="cyan")
    table.add_column("SOL", justify="right", style="green")
    table.add_column("State")
    table.add_column("Validator", style="dim")
    for account in accounts:
        table.add_row(
            str(account.address),
            f"{account.lamports / LAMPORTS_PER_SOL:.4f}",
            account.state.value,
            str(account.delegated_validator) if account.delegated_validator else "-",
        )
    console.print(table)


@app.command()
def validators(
    limit: int = typer.Option(10, "--limit", "-n", help="How many validators to list"),
    rpc: Optional[str] = RPC_OPTION,
):
    """List current validators by activated stake (vote accounts to delegate to)."""
    summaries = _run_with_ledger(lambda ledger: ledger.get_validators(limit), rpc)

    table = Table(title="Validators")
    table.add_column("Vote account", style="cyan")
    table.add_column("Node", style="dim")
    table.add_column("Stake (SOL)", justify="right", style="green")
    for v in summaries:
        table.add_row(str(v.vote_account), str(v.node_pubkey), f"{v.stake_sol:,.0f}")
    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: DERIVE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def derive(
    base: str = typer.Argument(..., help="Base public key"),
    seed: str = typer.Argument(..., help="Seed string (<= 32 UTF-8 bytes)"),
    owner: str = typer.Option(str(STAKE_PROGRAM_ID), "--owner", help="Owner program id"),
):
    """
    Derive a seed-based account address (pure, no network).

    \b
    Examples:
        python cli_typer.py derive 7xKX... stake:1700000000000
    """
    try:
        address = derive_address(SeedSpec.of(base, seed, owner))
    except PassPayError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold cyan]Base[/bold cyan]:    {base}\n"
        f"[bold cyan]Seed[/bold cyan]:    {seed}\n"
        f"[bold cyan]Owner[/bold cyan]:   {owner}\n"
        f"[bold green]Address[/bold green]: {address}",
        border_style="cyan",
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: DECOMPOSE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def decompose(
    blob: str = typer.Argument(..., help="Base64 transaction, or a file containing one"),
    rpc: Optional[str] = RPC_OPTION,
):
    """
    Decompose a versioned transaction into its instructions.

    Lookup tables are fetched from the ledger.
    """
    if os.path.isfile(blob):
        with open(blob, "r", encoding="utf-8") as f:
            blob = f.read().strip()

    try:
        envelope = decode_envelope(blob)
    except PassPayError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)

    instructions = _run_with_ledger(
        lambda ledger: VersionedTransactionDecomposer(ledger).decompose(blob), rpc
    )

    console.print(
        f"\n[bold]{envelope.version.value}[/bold] transaction: "
        f"{len(envelope.static_keys)} static keys, {len(envelope.lookups)} lookup table(s)\n"
    )
    for i, ix in enumerate(instructions):
        table = Table(title=f"#{i} program {ix.program_id}", title_justify="left")
        table.add_column("Account", style="cyan")
        table.add_column("Signer")
        table.add_column("Writable")
        for meta in ix.accounts:
            table.add_row(str(meta.pubkey), "✓" if meta.is_signer else "", "✓" if meta.is_writable else "")
        console.print(table)
        console.print(f"[dim]data ({len(ix.data)} bytes): {bytes(ix.data).hex()}[/dim]\n")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: EXPLORER
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def explorer(
    signature: str = typer.Argument(..., help="Transaction signature"),
    cluster: str = typer.Option(Settings.CLUSTER, "--cluster", help="devnet | mainnet"),
):
    """Print the explorer URL for a signature."""
    try:
        mode = NetworkMode.from_cluster(cluster)
    except ValueError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)
    console.print(explorer_url(signature, mode))


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def main():
    """Entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
