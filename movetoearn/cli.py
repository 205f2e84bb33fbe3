"""
movetoearn command line

Usage:
    movetoearn submit <steps>            # submit today's step count (0 = check-in)
    movetoearn results [--account ADDR]  # recent Submitted events + token balance
    movetoearn status                    # network, contracts and encoder backend
    movetoearn encode <value>            # show a simulated confidential payload
    movetoearn --network sepolia ...     # select the network profile
    movetoearn -v ...                    # verbose logging to movetoearn_debug.log

Configuration comes from the environment / .env (see config/settings.py).
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

import pandas as pd

from .config.settings import Settings, load_settings
from .logging_config import setup_logging
from .services.encoder import SimulatedEncoder, decode_handle, select_encoder
from .services.errors import ReconciliationUnavailable
from .services.ledger import Web3LedgerReader, Web3Signer, create_web3
from .services.reconciler import EventReconciler
from .services.submission import SubmissionOrchestrator
from .services.token_service import fetch_token_summary

logger = logging.getLogger(__name__)


def print_section(title: str, char: str = "="):
    """Print a section header"""
    print(f"\n{char * 60}")
    print(f" {title}")
    print(f"{char * 60}")


async def run_submit(settings: Settings, steps: str) -> int:
    w3 = create_web3(settings.rpc_url)
    signer = Web3Signer(w3, settings.private_key, settings.account)
    encoder = select_encoder(settings.force_mock, settings.chain_id)
    orchestrator = SubmissionOrchestrator(signer, encoder, settings.contracts)

    outcome = await orchestrator.submit(steps)

    print_section("Submission")
    if outcome.is_success:
        print(f"  Path:      {outcome.path.value}")
        print(f"  Steps:     {steps}")
        print(f"  Tx:        {outcome.transaction_id}")
        print(f"  Block:     {outcome.confirmed_block}")
        print(f"  Gas used:  {outcome.gas_used}")
        link = settings.explorer_tx_url(outcome.transaction_id)
        if link:
            print(f"  Explorer:  {link}")
        return 0

    print(f"  [FAILED] {outcome.error_kind.value}")
    print(f"  {outcome.message}")
    if outcome.attempts > 1:
        print(f"  Attempts:  {outcome.attempts}")
    return 1


async def run_results(settings: Settings, account: Optional[str]) -> int:
    w3 = create_web3(settings.rpc_url)
    reader = Web3LedgerReader(w3)
    if not account:
        account = await Web3Signer(w3, settings.private_key, settings.account).get_address()

    reconciler = EventReconciler(reader)
    summary_task = asyncio.ensure_future(fetch_token_summary(reader, settings.contracts.token, account))
    try:
        result = await reconciler.fetch(account, settings.contracts.rewards, settings.contracts.enc_rewards)
    except ReconciliationUnavailable as e:
        summary_task.cancel()
        print(f"[!] {e}")
        return 1
    summary = await summary_task

    print_section("Account")
    print(f"  Account:          {account}")
    print(f"  Token balance:    {summary.balance} {summary.symbol}")
    print(f"  Submitted today:  {'yes' if result.submitted_today else 'no'} (day {result.today_index})")

    print_section(f"Recent submissions ({len(result.records)})")
    df = result.to_dataframe()
    if df.empty:
        print("  No Submitted events found")
        return 0

    if settings.explorer_base:
        df['link'] = df['tx'].apply(settings.explorer_tx_url)
    df['tx'] = df['tx'].str.slice(0, 10) + '...'
    with pd.option_context('display.max_columns', None, 'display.width', 200):
        print(df.drop(columns=['log_index']).to_string(index=False))
    return 0


async def run_status(settings: Settings) -> int:
    w3 = create_web3(settings.rpc_url)
    reader = Web3LedgerReader(w3)

    print_section("Status")
    print(f"  Network:   {settings.network} (chain {settings.chain_id})")
    print(f"  RPC:       {settings.rpc_url}")
    try:
        encoder = select_encoder(settings.force_mock, settings.chain_id)
        print(f"  Encoder:   {encoder.name}")
    except ValueError as e:
        print(f"  Encoder:   unavailable ({e})")

    for label, address in (("token", settings.contracts.token),
                           ("rewards", settings.contracts.rewards),
                           ("encRewards", settings.contracts.enc_rewards)):
        if not address:
            print(f"  {label:<10} not configured")
            continue
        try:
            code = await reader.get_code(address)
            state = "deployed" if code else "no code"
        except Exception as e:
            state = f"unreachable ({e})"
        print(f"  {label:<10} {address} [{state}]")
    return 0


async def run_encode(value: int) -> int:
    payload = await SimulatedEncoder().encode("0x" + "0" * 40, "0x" + "0" * 40, value)
    print_section("Simulated confidential payload")
    print(f"  Handle:   {payload.handle}")
    print(f"  Proof:    {payload.proof}")
    print(f"  Decoded:  {decode_handle(payload.handle)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='movetoearn', description='Daily step count ledger client')
    parser.add_argument('--network', '-n', type=str, help='Network profile (local, sepolia)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    submit = sub.add_parser('submit', help="Submit today's step count")
    submit.add_argument('steps', type=str, help='Step count, 0 for a check-in')

    results = sub.add_parser('results', help='Show recent submissions')
    results.add_argument('--account', type=str, help='Account to report (defaults to the signer)')

    sub.add_parser('status', help='Show network, contract and encoder status')

    encode = sub.add_parser('encode', help='Show a simulated confidential payload')
    encode.add_argument('value', type=int, help='uint64 value to encode')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.network)
    except ValueError as e:
        print(f"[!] {e}")
        return 2

    setup_logging(verbose=args.verbose or settings.debug)

    try:
        if args.command == 'submit':
            return asyncio.run(run_submit(settings, args.steps))
        if args.command == 'results':
            return asyncio.run(run_results(settings, args.account))
        if args.command == 'status':
            return asyncio.run(run_status(settings))
        return asyncio.run(run_encode(args.value))
    except ValueError as e:
        print(f"[!] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
