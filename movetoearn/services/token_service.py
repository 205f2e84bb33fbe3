"""
Reward token summary (symbol, decimals, balance) for the results view.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from eth_abi import decode as abi_decode
from eth_utils import to_checksum_address

from ..config.network_config import (
    DEFAULT_TOKEN_BALANCE,
    DEFAULT_TOKEN_DECIMALS,
    DEFAULT_TOKEN_SYMBOL,
    ERC20_BALANCE_OF_SIGNATURE,
    ERC20_DECIMALS_SIGNATURE,
    ERC20_SYMBOL_SIGNATURE,
)
from ..config.settings import is_configured_address
from .ledger import LedgerReader, encode_call
from .models import TokenSummary

logger = logging.getLogger(__name__)


def units_to_decimal(raw: int, decimals: int) -> Decimal:
    """Convert raw token units to a Decimal amount"""
    return Decimal(raw) / Decimal(10 ** decimals)


def default_summary() -> TokenSummary:
    return TokenSummary(symbol=DEFAULT_TOKEN_SYMBOL, decimals=DEFAULT_TOKEN_DECIMALS,
                        balance=DEFAULT_TOKEN_BALANCE)


async def fetch_token_summary(reader: LedgerReader, token_address: Optional[str],
                              account: str) -> TokenSummary:
    """
    Read symbol, decimals and the account balance of the reward token.
    Falls back to MOVE / 18 / 0 when the token is not deployed or a call fails.
    """
    if not is_configured_address(token_address):
        return default_summary()

    try:
        code = await reader.get_code(token_address)
        if not code:
            logger.info(f"No token contract at {token_address}, using defaults")
            return default_summary()

        raw_symbol, raw_decimals, raw_balance = await asyncio.gather(
            reader.call(token_address, encode_call(ERC20_SYMBOL_SIGNATURE, [], [])),
            reader.call(token_address, encode_call(ERC20_DECIMALS_SIGNATURE, [], [])),
            reader.call(token_address, encode_call(ERC20_BALANCE_OF_SIGNATURE, ["address"],
                                                   [to_checksum_address(account)])),
        )
        symbol = abi_decode(["string"], raw_symbol)[0]
        decimals = abi_decode(["uint8"], raw_decimals)[0]
        balance = abi_decode(["uint256"], raw_balance)[0]
    except Exception as e:
        logger.warning(f"Could not read token info for {token_address}: {e}")
        return default_summary()

    return TokenSummary(symbol=symbol, decimals=decimals, balance=units_to_decimal(balance, decimals))
