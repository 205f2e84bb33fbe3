"""
Ledger access: signer and read-only provider collaborators.

The orchestrator and reconciler only depend on the Signer / LedgerReader
interfaces; Web3Signer and Web3LedgerReader implement them over web3.py.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError

from ..config.network_config import (
    LAST_SUBMIT_DAY_SIGNATURE,
    RECEIPT_TIMEOUT,
    SUBMIT_CONFIDENTIAL_SIGNATURE,
    SUBMIT_PLAIN_SIGNATURE,
)
from .errors import TransactionReverted
from .models import EncryptedPayload

logger = logging.getLogger(__name__)


# ============================================================================
# CALL DATA
# ============================================================================

def encode_call(signature: str, arg_types: List[str], args: List[Any]) -> str:
    """ABI-encode a function call: 4-byte selector followed by the encoded args"""
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + abi_encode(arg_types, args)).hex()


def plain_submit_calldata(step_count: int) -> str:
    return encode_call(SUBMIT_PLAIN_SIGNATURE, ["uint256"], [step_count])


def confidential_submit_calldata(payload: EncryptedPayload) -> str:
    return encode_call(
        SUBMIT_CONFIDENTIAL_SIGNATURE, ["bytes32", "bytes"],
        [payload.handle_bytes, payload.proof_bytes]
    )


def last_submit_day_calldata(account: str) -> str:
    return encode_call(LAST_SUBMIT_DAY_SIGNATURE, ["address"], [to_checksum_address(account)])


def decode_uint256(data: bytes) -> int:
    return abi_decode(["uint256"], bytes(data))[0]


# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================

class Signer(ABC):
    """Wallet abstraction: account address, transaction submission, confirmation"""

    @abstractmethod
    async def get_address(self) -> str:
        pass

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Broadcast a transaction ({to, data, gas?}) and return its hash"""
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, timeout: float = RECEIPT_TIMEOUT) -> Dict[str, Any]:
        """Wait until mined; raise on revert"""
        pass


class LedgerReader(ABC):
    """Read-only RPC access used by the reconciler"""

    @abstractmethod
    async def block_number(self) -> int:
        pass

    @abstractmethod
    async def get_code(self, address: str) -> bytes:
        pass

    @abstractmethod
    async def get_logs(self, filter_params: Dict[str, Any]) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def call(self, to: str, data: str) -> bytes:
        pass


# ============================================================================
# WEB3 IMPLEMENTATIONS
# ============================================================================

def create_web3(rpc_url: str) -> AsyncWeb3:
    logger.info(f"Connecting to RPC endpoint: {rpc_url[:50]}")
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


class Web3Signer(Signer):
    """
    Signs with a local private key when one is configured, otherwise lets the
    node sign with one of its unlocked accounts (local development chains).
    """

    def __init__(self, w3: AsyncWeb3, private_key: Optional[str] = None,
                 address: Optional[str] = None):
        self.w3 = w3
        self.account = Account.from_key(private_key) if private_key else None
        self._address = to_checksum_address(address) if address else None
        # Sent calls by hash, replayed to recover a revert reason
        self._sent: Dict[str, Dict[str, Any]] = {}

    async def get_address(self) -> str:
        if self.account is not None:
            return self.account.address
        if self._address is None:
            accounts = await self.w3.eth.accounts
            if not accounts:
                raise ConnectionError("Node exposes no accounts and no PRIVATE_KEY is configured")
            self._address = to_checksum_address(accounts[0])
        return self._address

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        sender = await self.get_address()
        tx = dict(tx)
        tx["to"] = to_checksum_address(tx["to"])
        tx["from"] = sender

        if self.account is None:
            tx_hash = await self.w3.eth.send_transaction(tx)
        else:
            tx["nonce"] = await self.w3.eth.get_transaction_count(sender, "pending")
            tx["chainId"] = await self.w3.eth.chain_id
            if "gas" not in tx:
                tx["gas"] = await self.w3.eth.estimate_gas(tx)
            tx["gasPrice"] = await self.w3.eth.gas_price
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_hash_hex = self.w3.to_hex(tx_hash)
        self._sent[tx_hash_hex] = {k: tx[k] for k in ("from", "to", "data", "gas") if k in tx}
        logger.info(f"Transaction sent: {tx_hash_hex}")
        return tx_hash_hex

    async def wait_for_receipt(self, tx_hash: str, timeout: float = RECEIPT_TIMEOUT) -> Dict[str, Any]:
        receipt = await self.w3.eth.wait_for_transaction_receipt(HexBytes(tx_hash), timeout=timeout)
        call = self._sent.pop(tx_hash, None)
        if receipt.get("status") == 0:
            reason = await self._revert_reason(call, receipt.get("blockNumber"))
            raise TransactionReverted(tx_hash, reason) if reason else TransactionReverted(tx_hash)
        return dict(receipt)

    async def _revert_reason(self, call: Optional[Dict[str, Any]], block_number: Any) -> Optional[str]:
        """Re-run a mined, reverted call at its block to read the revert reason"""
        if call is None:
            return None
        try:
            await self.w3.eth.call(call, block_number)
        except ContractLogicError as e:
            return getattr(e, "message", None) or str(e)
        except Exception as e:
            logger.warning(f"Could not replay reverted transaction: {e}")
        return None


class Web3LedgerReader(LedgerReader):
    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    async def block_number(self) -> int:
        return await self.w3.eth.block_number

    async def get_code(self, address: str) -> bytes:
        return bytes(await self.w3.eth.get_code(to_checksum_address(address)))

    async def get_logs(self, filter_params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return list(await self.w3.eth.get_logs(filter_params))

    async def call(self, to: str, data: str) -> bytes:
        return bytes(await self.w3.eth.call({"to": to_checksum_address(to), "data": data}))
