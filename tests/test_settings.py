"""
Unit tests for settings resolution and the token summary fallback.
"""
import asyncio
import json
import sys
import os
from decimal import Decimal

import pytest
from eth_abi import encode as abi_encode

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from movetoearn.config.settings import is_configured_address, load_deployment_file, load_settings
from movetoearn.services.ledger import LedgerReader, encode_call
from movetoearn.services.token_service import fetch_token_summary

TOKEN = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"
REWARDS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ENC_REWARDS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
USER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

ENV_VARS = ["MOVETOEARN_NETWORK", "MOVETOEARN_RPC_URL", "DEPLOYMENTS_DIR", "TOKEN_ADDRESS",
            "REWARDS_ADDRESS", "ENC_REWARDS_ADDRESS", "PRIVATE_KEY", "ACCOUNT_ADDRESS",
            "FORCE_MOCK", "MOVETOEARN_DEBUG"]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestSettings:
    """Test profile, deployment file and environment precedence."""

    def test_is_configured_address(self):
        assert is_configured_address(REWARDS)
        assert not is_configured_address(None)
        assert not is_configured_address("")
        assert not is_configured_address("0x" + "0" * 40)

    def test_deployment_file(self, clean_env):
        (clean_env / "deployments-sepolia.json").write_text(json.dumps({
            "network": "sepolia", "token": TOKEN, "rewards": REWARDS, "encRewards": ENC_REWARDS,
        }))

        assert load_deployment_file("sepolia", str(clean_env)) == {
            "token": TOKEN, "rewards": REWARDS, "encRewards": ENC_REWARDS,
        }
        assert load_deployment_file("localhost", str(clean_env)) == {}

    def test_local_profile_reads_localhost_file(self, clean_env):
        (clean_env / "deployments-localhost.json").write_text(json.dumps({"rewards": REWARDS}))

        settings = load_settings("local")

        assert settings.chain_id == 31337
        assert settings.is_local_chain
        assert settings.contracts.rewards == REWARDS
        assert settings.contracts.enc_rewards is None
        assert settings.explorer_tx_url("0xabc") == ""

    def test_environment_wins(self, clean_env, monkeypatch):
        (clean_env / "deployments-sepolia.json").write_text(json.dumps({"rewards": REWARDS}))
        monkeypatch.setenv("DEPLOYMENTS_DIR", str(clean_env))
        monkeypatch.setenv("REWARDS_ADDRESS", TOKEN)
        monkeypatch.setenv("MOVETOEARN_RPC_URL", "http://node:8545")
        monkeypatch.setenv("FORCE_MOCK", "true")

        settings = load_settings("sepolia")

        assert settings.contracts.rewards == TOKEN
        assert settings.rpc_url == "http://node:8545"
        assert settings.force_mock is True
        assert settings.explorer_tx_url("0xabc") == "https://sepolia.etherscan.io/tx/0xabc"

    def test_unknown_network(self, clean_env):
        with pytest.raises(ValueError):
            load_settings("mainnet")


class TokenReader(LedgerReader):
    def __init__(self, deployed=True, fail=False):
        self.deployed = deployed
        self.fail = fail

    async def block_number(self):
        return 1

    async def get_code(self, address):
        return b"\x60\x80" if self.deployed else b""

    async def get_logs(self, filter_params):
        return []

    async def call(self, to, data):
        if self.fail:
            raise ConnectionError("node down")
        if data == encode_call("symbol()", [], []):
            return abi_encode(["string"], ["STEP"])
        if data == encode_call("decimals()", [], []):
            return abi_encode(["uint8"], [6])
        return abi_encode(["uint256"], [2_500_000])


class TestTokenSummary:
    """Test token summary reads and the MOVE / 18 / 0 fallback."""

    def test_reads_token(self):
        summary = asyncio.run(fetch_token_summary(TokenReader(), TOKEN, USER))

        assert summary.symbol == "STEP"
        assert summary.decimals == 6
        assert summary.balance == Decimal("2.5")

    @pytest.mark.parametrize("reader,address", [
        (TokenReader(), None),
        (TokenReader(deployed=False), TOKEN),
        (TokenReader(fail=True), TOKEN),
    ])
    def test_fallback(self, reader, address):
        summary = asyncio.run(fetch_token_summary(reader, address, USER))

        assert (summary.symbol, summary.decimals, summary.balance) == ("MOVE", 18, Decimal(0))
