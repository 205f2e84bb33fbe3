"""
Confidential Encoder

Turns a uint64 step count into an opaque 32-byte handle plus an input proof.
Two variants share one interface and are chosen once, at construction:

- SimulatedEncoder: deterministic layout for nodes without a confidential
  computation backend. The handle data is
      value (16 hex) | coarse timestamp (8 hex) | nonce (8 hex) | zero fill (32 hex)
  and decode_handle() recovers the value from the first 16 digits.
- RelayerEncoder: delegates to the relayer SDK instance owned by RelayerClient.

Contract and user addresses are accepted by both variants as the encryption
context; the simulated layout does not embed them.
"""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Union

from ..config.network_config import (
    HANDLE_HEX_DIGITS,
    LOCAL_CHAIN_ID,
    MAX_UINT64,
    NONCE_HEX_DIGITS,
    PROOF_BYTES,
    PROOF_MARKER,
    TIMESTAMP_HEX_DIGITS,
    VALUE_HEX_DIGITS,
)
from .models import EncryptedPayload
from .relayer_client import RelayerClient

logger = logging.getLogger(__name__)


def _check_uint64(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Encrypted value must be an integer, got {type(value).__name__}")
    if value < 0 or value > MAX_UINT64:
        raise ValueError(f"Encrypted value {value} is outside the uint64 range")
    return value


def _random_nonce() -> str:
    return secrets.token_hex(NONCE_HEX_DIGITS // 2)


def decode_handle(handle: Union[str, bytes]) -> int:
    """
    Recover the step count from a simulated handle.

    The first 16 hex digits after the 0x prefix hold the value,
    e.g. 0x0000000000001194... -> 0x1194 -> 4500.
    """
    if isinstance(handle, (bytes, bytearray)):
        data = bytes(handle).hex()
    else:
        data = handle[2:] if handle[:2].lower() == "0x" else handle
    return int(data[:VALUE_HEX_DIGITS], 16)


# ============================================================================
# SIMULATED BACKEND
# ============================================================================

class SimulatedEncryptedInput:
    """Builder mirroring the relayer SDK: create -> add64 -> encrypt"""

    def __init__(self, contract_address: str, user_address: str,
                 clock: Callable[[], float], nonce_source: Callable[[], str]):
        self.contract_address = contract_address
        self.user_address = user_address
        self._clock = clock
        self._nonce_source = nonce_source
        self.value = 0

    def add64(self, value: int) -> "SimulatedEncryptedInput":
        self.value = _check_uint64(value)
        return self

    def _build_proof(self, timestamp: str, nonce: str) -> str:
        proof = bytearray(PROOF_BYTES)
        proof[0:4] = timestamp.encode("utf-8")[:4].ljust(4, b"\x00")
        proof[4:8] = nonce.encode("utf-8")[:4].ljust(4, b"\x00")
        proof[8:16] = PROOF_MARKER.encode("utf-8")[:8].ljust(8, b"\x00")
        return "0x" + bytes(proof).hex()

    def encrypt(self) -> EncryptedPayload:
        value_hex = format(self.value, "x").zfill(VALUE_HEX_DIGITS)
        timestamp = format(int(self._clock()) & 0xFFFFFFFF, "x").zfill(TIMESTAMP_HEX_DIGITS)
        nonce = self._nonce_source()

        fill = "0" * (HANDLE_HEX_DIGITS - VALUE_HEX_DIGITS - TIMESTAMP_HEX_DIGITS - NONCE_HEX_DIGITS)
        handle_data = value_hex + timestamp + nonce + fill

        if len(handle_data) != HANDLE_HEX_DIGITS:
            logger.warning(
                f"Handle data length {len(handle_data)} != {HANDLE_HEX_DIGITS}, correcting"
            )
            handle_data = handle_data.ljust(HANDLE_HEX_DIGITS, "0")[:HANDLE_HEX_DIGITS]

        logger.debug(f"Simulated handle for value {self.value}: 0x{handle_data}")
        return EncryptedPayload(handle="0x" + handle_data, proof=self._build_proof(timestamp, nonce))


class SimulatedRelayer:
    def __init__(self, clock: Callable[[], float] = time.time,
                 nonce_source: Callable[[], str] = _random_nonce):
        self.clock = clock
        self.nonce_source = nonce_source

    def create_encrypted_input(self, contract_address: str, user_address: str) -> SimulatedEncryptedInput:
        return SimulatedEncryptedInput(contract_address, user_address, self.clock, self.nonce_source)


# ============================================================================
# ENCODER CAPABILITY
# ============================================================================

class ConfidentialEncoder(ABC):
    """Encrypts a uint64 for a (contract, user) pair"""

    name = "base"

    @abstractmethod
    async def encode(self, contract_address: str, user_address: str, value: int) -> EncryptedPayload:
        pass


class SimulatedEncoder(ConfidentialEncoder):
    name = "simulated"

    def __init__(self, clock: Callable[[], float] = time.time,
                 nonce_source: Callable[[], str] = _random_nonce):
        self.relayer = SimulatedRelayer(clock=clock, nonce_source=nonce_source)

    async def encode(self, contract_address: str, user_address: str, value: int) -> EncryptedPayload:
        return (
            self.relayer
            .create_encrypted_input(contract_address, user_address)
            .add64(_check_uint64(value))
            .encrypt()
        )


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text[:2].lower() == "0x" else "0x" + text


class RelayerEncoder(ConfidentialEncoder):
    """Encrypts through a real confidential-computation relayer instance"""

    name = "relayer"

    def __init__(self, client: RelayerClient):
        self.client = client

    async def encode(self, contract_address: str, user_address: str, value: int) -> EncryptedPayload:
        relayer = await self.client.get_instance()
        encrypted = (
            relayer
            .create_encrypted_input(contract_address, user_address)
            .add64(_check_uint64(value))
            .encrypt()
        )
        if hasattr(encrypted, "__await__"):
            encrypted = await encrypted

        if isinstance(encrypted, dict):
            handles, proof = encrypted["handles"], encrypted["inputProof"]
        else:
            handles, proof = encrypted.handles, encrypted.input_proof

        handle = _to_hex(handles[0])
        if len(handle) != 2 + HANDLE_HEX_DIGITS:
            raise ValueError(f"Relayer returned a {(len(handle) - 2) // 2}-byte handle, expected 32")
        return EncryptedPayload(handle=handle, proof=_to_hex(proof))


def select_encoder(force_mock: Optional[bool], chain_id: int,
                   relayer_client: Optional[RelayerClient] = None) -> ConfidentialEncoder:
    """
    Pick the encoder variant once for the session.

    FORCE_MOCK=true/false wins; otherwise the simulated encoder is used on the
    local chain or when no relayer backend is available.
    """
    if force_mock is True:
        encoder: ConfidentialEncoder = SimulatedEncoder()
    elif force_mock is False:
        if relayer_client is None:
            raise ValueError("FORCE_MOCK=false but no confidential relayer backend is available")
        encoder = RelayerEncoder(relayer_client)
    elif chain_id == LOCAL_CHAIN_ID or relayer_client is None:
        encoder = SimulatedEncoder()
    else:
        encoder = RelayerEncoder(relayer_client)

    logger.info(f"Confidential encoder: {encoder.name}")
    return encoder
