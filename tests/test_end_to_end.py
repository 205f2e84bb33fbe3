"""
Submission followed by reconciliation against an in-memory chain that turns
submit calls into Submitted logs.
"""
import asyncio
import sys
import os

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_utils import function_signature_to_4byte_selector
from hexbytes import HexBytes
from web3 import Web3

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from movetoearn.config.settings import ContractAddresses
from movetoearn.services.encoder import SimulatedEncoder
from movetoearn.services.ledger import LedgerReader, Signer
from movetoearn.services.models import ContractKind, ErrorKind, RecordSource
from movetoearn.services.reconciler import EventReconciler
from movetoearn.services.submission import SubmissionOrchestrator

PLAIN = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CONFIDENTIAL = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
USER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

DAY = 20100
NOW_SECONDS = DAY * 86400 + 600

PLAIN_SELECTOR = function_signature_to_4byte_selector("submitDaily(uint256)")
CONFIDENTIAL_SELECTOR = function_signature_to_4byte_selector("submitDailyEncrypted(bytes32,bytes)")
LAST_DAY_SELECTOR = function_signature_to_4byte_selector("lastSubmitDay(address)")


class InMemoryChain(Signer, LedgerReader):
    """Minimal rewards contracts: one submission per day per contract"""

    def __init__(self):
        self.block = 1000
        self.logs = []
        self.last_day = {}

    async def get_address(self):
        return USER

    async def send_transaction(self, tx):
        data = bytes.fromhex(tx["data"][2:])
        contract = tx["to"].lower()
        if self.last_day.get(contract) == DAY:
            raise Exception("execution reverted: Already submitted today")

        if data[:4] == PLAIN_SELECTOR:
            (steps,) = abi_decode(["uint256"], data[4:])
            signature = "Submitted(address,uint256,uint256,uint256)"
            payload = abi_encode(["uint256", "uint256", "uint256"], [DAY, steps, steps * 10**15])
        elif data[:4] == CONFIDENTIAL_SELECTOR:
            handle, proof = abi_decode(["bytes32", "bytes"], data[4:])
            signature = "Submitted(address,uint256,bytes32,bytes,uint256)"
            payload = abi_encode(["uint256", "bytes32", "bytes", "uint256"], [DAY, handle, proof, 10**18])
        else:
            raise Exception("execution reverted")

        self.block += 1
        self.last_day[contract] = DAY
        tx_hash = HexBytes(Web3.keccak(text=f"tx-{self.block}"))
        self.logs.append({
            "address": tx["to"],
            "topics": [HexBytes(Web3.keccak(text=signature)), HexBytes(abi_encode(["address"], [USER]))],
            "data": HexBytes(payload),
            "logIndex": 0,
            "transactionIndex": 0,
            "transactionHash": tx_hash,
            "blockHash": HexBytes(b"\x22" * 32),
            "blockNumber": self.block,
        })
        return "0x" + bytes(tx_hash).hex()

    async def wait_for_receipt(self, tx_hash, timeout=120):
        return {"status": 1, "blockNumber": self.block, "gasUsed": 65000}

    async def block_number(self):
        return self.block

    async def get_code(self, address):
        return b"\x60\x80"

    async def get_logs(self, filter_params):
        return [
            log for log in self.logs
            if log["address"].lower() == filter_params["address"].lower()
            and Web3.to_hex(log["topics"][0]) == filter_params["topics"][0]
            and filter_params["fromBlock"] <= log["blockNumber"] <= filter_params["toBlock"]
        ]

    async def call(self, to, data):
        assert bytes.fromhex(data[2:])[:4] == LAST_DAY_SELECTOR
        return abi_encode(["uint256"], [self.last_day.get(to.lower(), 0)])


async def no_sleep(delay):
    return None


class TestSubmitThenReconcile:
    """Test that submitted values come back through the reconciler."""

    def test_confidential_round_trip(self):
        chain = InMemoryChain()
        orchestrator = SubmissionOrchestrator(
            chain, SimulatedEncoder(), ContractAddresses(rewards=PLAIN, enc_rewards=CONFIDENTIAL),
            clock=lambda: NOW_SECONDS * 1000, sleep=no_sleep,
        )
        reconciler = EventReconciler(chain, clock=lambda: NOW_SECONDS)

        async def run():
            before = await reconciler.fetch(USER, PLAIN, CONFIDENTIAL)
            outcome = await orchestrator.submit("4500")
            after = await reconciler.fetch(USER, PLAIN, CONFIDENTIAL)
            return before, outcome, after

        before, outcome, after = asyncio.run(run())

        assert before.records == []
        assert before.submitted_today is False
        assert outcome.is_success
        assert outcome.path == ContractKind.CONFIDENTIAL
        assert after.submitted_today is True
        assert len(after.records) == 1
        record = after.records[0]
        assert record.steps == 4500
        assert record.day_index == DAY
        assert record.source == RecordSource.CONFIDENTIAL_HANDLE
        assert record.transaction_id == outcome.transaction_id

    def test_plain_check_in_and_daily_limit(self):
        chain = InMemoryChain()
        clock_ms = [NOW_SECONDS * 1000]
        orchestrator = SubmissionOrchestrator(
            chain, SimulatedEncoder(), ContractAddresses(rewards=PLAIN),
            clock=lambda: clock_ms[0], sleep=no_sleep,
        )
        reconciler = EventReconciler(chain, clock=lambda: NOW_SECONDS)

        async def run():
            first = await orchestrator.submit("0")
            clock_ms[0] += 5000
            second = await orchestrator.submit("10")
            result = await reconciler.fetch(USER, PLAIN, None)
            return first, second, result

        first, second, result = asyncio.run(run())

        assert first.is_success
        assert second.error_kind == ErrorKind.ALREADY_SUBMITTED_TODAY
        assert [r.steps for r in result.records] == [0]
        assert result.submitted_today is True
