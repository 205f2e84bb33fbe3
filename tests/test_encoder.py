"""
Unit tests for the confidential encoder.

Tests:
- Handle/proof layout and fixed lengths, including uint64 boundaries
- decode_handle() round trip
- Length self-correction when the nonce drifts
- Encoder variant selection and the relayer-backed variant
"""
import asyncio
import sys
import os

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from movetoearn.services.encoder import (
    RelayerEncoder,
    SimulatedEncoder,
    decode_handle,
    select_encoder,
)
from movetoearn.services.relayer_client import RelayerClient

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
USER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
MAX_UINT64 = 2**64 - 1


def encode(value, **kwargs):
    return asyncio.run(SimulatedEncoder(**kwargs).encode(CONTRACT, USER, value))


class TestHandleLayout:
    """Test the simulated handle and proof layout."""

    @pytest.mark.parametrize("value", [0, 1, 4500, 2**32, MAX_UINT64])
    def test_round_trip_and_lengths(self, value):
        """decode(encode(v)) == v with a 32-byte handle and a 32-byte proof."""
        payload = encode(value)

        assert payload.handle.startswith("0x")
        assert len(payload.handle) == 66, "handle data must be exactly 64 hex digits"
        assert len(payload.proof) == 66, "proof must be exactly 32 bytes"
        assert decode_handle(payload.handle) == value

    def test_value_occupies_first_16_digits(self):
        """4500 steps -> 0x0000000000001194..."""
        payload = encode(4500, clock=lambda: 0x12345678, nonce_source=lambda: "abcdef01")

        assert payload.handle == "0x" + "0000000000001194" + "12345678" + "abcdef01" + "0" * 32

    def test_timestamp_is_coarse_8_digits(self):
        """Timestamps above 32 bits are reduced to 8 hex digits."""
        payload = encode(7, clock=lambda: 0x1_0000_0001, nonce_source=lambda: "00000000")

        assert payload.handle[2 + 16:2 + 24] == "00000001"

    def test_proof_segments(self):
        """Proof = timestamp bytes, nonce bytes, fixed marker, zero fill."""
        payload = encode(1, clock=lambda: 0x12345678, nonce_source=lambda: "abcdef01")
        proof = payload.proof_bytes

        assert len(proof) == 32
        assert proof[0:4] == b"1234"
        assert proof[4:8] == b"abcd"
        assert proof[8:16] == b"deadbeef"
        assert proof[16:] == b"\x00" * 16

    def test_addresses_not_embedded(self):
        """Contract and user addresses are context only."""
        payload = encode(42)

        assert CONTRACT[2:].lower() not in payload.handle.lower()
        assert USER[2:].lower() not in payload.handle.lower()

    def test_decode_handle_accepts_bytes(self):
        payload = encode(123456)

        assert decode_handle(payload.handle_bytes) == 123456

    @pytest.mark.parametrize("value", [-1, MAX_UINT64 + 1])
    def test_out_of_range_rejected(self, value):
        with pytest.raises(ValueError):
            encode(value)

    def test_non_integer_rejected(self):
        with pytest.raises(ValueError):
            encode(True)


class TestLengthSelfCorrection:
    """Test the handle length check when a construction step drifts."""

    def test_short_nonce_is_padded(self):
        """A 3-digit nonce leaves 61 digits; the encoder pads back to 64."""
        payload = encode(MAX_UINT64, nonce_source=lambda: "abc")

        assert len(payload.handle) == 66
        assert decode_handle(payload.handle) == MAX_UINT64

    def test_long_nonce_is_truncated(self):
        """A 12-digit nonce produces 68 digits; the encoder truncates to 64."""
        payload = encode(0, nonce_source=lambda: "abcdefabcdef")

        assert len(payload.handle) == 66
        assert decode_handle(payload.handle) == 0
        assert payload.handle[2 + 24:2 + 36] == "abcdefabcdef"

    def test_correction_is_logged(self, caplog):
        encode(5, nonce_source=lambda: "ab")

        assert any("correcting" in r.message for r in caplog.records)


class FakeEncryptedInput:
    def __init__(self, handle):
        self.handle = handle
        self.value = None

    def add64(self, value):
        self.value = value
        return self

    def encrypt(self):
        return {"handles": [self.handle], "inputProof": b"\x01\x02\x03"}


class FakeRelayer:
    def __init__(self, handle):
        self.handle = handle
        self.inputs = []

    def create_encrypted_input(self, contract, user):
        self.inputs.append((contract, user))
        return FakeEncryptedInput(self.handle)


def relayer_client_for(relayer):
    async def init_sdk():
        return True

    async def create_instance(config):
        return relayer

    return RelayerClient(init_sdk, create_instance)


class TestRelayerEncoder:
    """Test the relayer-backed encoder variant."""

    def test_normalizes_bytes_handle(self):
        relayer = FakeRelayer(b"\xaa" * 32)
        encoder = RelayerEncoder(relayer_client_for(relayer))

        payload = asyncio.run(encoder.encode(CONTRACT, USER, 10))

        assert payload.handle == "0x" + "aa" * 32
        assert payload.proof == "0x010203"
        assert relayer.inputs == [(CONTRACT, USER)]

    def test_rejects_wrong_handle_length(self):
        encoder = RelayerEncoder(relayer_client_for(FakeRelayer(b"\xaa" * 16)))

        with pytest.raises(ValueError):
            asyncio.run(encoder.encode(CONTRACT, USER, 10))


class TestSelectEncoder:
    """Test the one-time encoder variant selection."""

    def test_force_mock_true(self):
        client = relayer_client_for(FakeRelayer(b"\x00" * 32))
        assert isinstance(select_encoder(True, 11155111, client), SimulatedEncoder)

    def test_force_mock_false_requires_backend(self):
        with pytest.raises(ValueError):
            select_encoder(False, 11155111, None)

    def test_force_mock_false_uses_relayer(self):
        client = relayer_client_for(FakeRelayer(b"\x00" * 32))
        assert isinstance(select_encoder(False, 31337, client), RelayerEncoder)

    def test_local_chain_defaults_to_simulated(self):
        client = relayer_client_for(FakeRelayer(b"\x00" * 32))
        assert isinstance(select_encoder(None, 31337, client), SimulatedEncoder)

    def test_remote_chain_with_backend_uses_relayer(self):
        client = relayer_client_for(FakeRelayer(b"\x00" * 32))
        assert isinstance(select_encoder(None, 11155111, client), RelayerEncoder)

    def test_remote_chain_without_backend_is_simulated(self):
        assert isinstance(select_encoder(None, 11155111, None), SimulatedEncoder)
