"""
Event Reconciler

Rebuilds the recent submission history from Submitted event logs. The plain
contract emits one event schema; the confidential contract may have been
deployed in either of two versions, so both of its schemas are queried and
the union is deduplicated by (transactionHash, logIndex). Each log is decoded
with the process_log() pattern against the source contract's schemas in a
fixed priority order, and every schema is mapped to one canonical record.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from eth_utils import to_checksum_address
from web3 import Web3

from ..config.network_config import (
    CONFIDENTIAL_HANDLE_EVENT_ABI,
    CONFIDENTIAL_HANDLE_SIGNATURE,
    CONFIDENTIAL_PLAIN_EVENT_ABI,
    CONFIDENTIAL_PLAIN_SIGNATURE,
    EXPANDED_LOOKBACK_BLOCKS,
    INITIAL_LOOKBACK_BLOCKS,
    MAX_RESULT_RECORDS,
    PLAIN_SUBMITTED_EVENT_ABI,
    PLAIN_SUBMITTED_SIGNATURE,
    SECONDS_PER_DAY,
)
from ..config.settings import is_configured_address
from .encoder import decode_handle
from .errors import ReconciliationUnavailable
from .ledger import LedgerReader, decode_uint256, last_submit_day_calldata
from .models import CanonicalSubmissionRecord, ReconciliationResult, RecordSource

logger = logging.getLogger(__name__)

# Decoding only needs the ABI codec, never a connection
_codec_w3 = Web3()


@dataclass(frozen=True)
class EventSchema:
    name: str
    source: RecordSource
    abi: Dict[str, Any]
    signature: str

    @property
    def topic(self) -> str:
        return Web3.to_hex(Web3.keccak(text=self.signature))


PLAIN_SCHEMAS = (
    EventSchema("plain", RecordSource.PLAIN, PLAIN_SUBMITTED_EVENT_ABI, PLAIN_SUBMITTED_SIGNATURE),
)

# Priority order: handle version (mock contract) first, then the FHE version
CONFIDENTIAL_SCHEMAS = (
    EventSchema("confidential_handle", RecordSource.CONFIDENTIAL_HANDLE,
                CONFIDENTIAL_HANDLE_EVENT_ABI, CONFIDENTIAL_HANDLE_SIGNATURE),
    EventSchema("confidential_plain", RecordSource.CONFIDENTIAL_PLAIN,
                CONFIDENTIAL_PLAIN_EVENT_ABI, CONFIDENTIAL_PLAIN_SIGNATURE),
)


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value).lower()


def dedupe_logs(logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop repeated (transactionHash, logIndex) pairs, keeping the first occurrence"""
    if not logs:
        return []
    keys = pd.DataFrame({
        'tx_hash': [_hex(log['transactionHash']) for log in logs],
        'log_index': [int(log['logIndex']) for log in logs],
    })
    keep = ~keys.duplicated(subset=['tx_hash', 'log_index'], keep='first')
    return [log for log, kept in zip(logs, keep.tolist()) if kept]


class EventReconciler:
    """
    Stateless across calls: every fetch() is an independent query.

    Args:
        reader: Read-only ledger collaborator
        clock: Seconds since epoch, used for the current day index
    """

    def __init__(
        self,
        reader: LedgerReader,
        clock: Callable[[], float] = time.time,
        initial_lookback: int = INITIAL_LOOKBACK_BLOCKS,
        expanded_lookback: int = EXPANDED_LOOKBACK_BLOCKS,
        max_records: int = MAX_RESULT_RECORDS,
    ):
        self.reader = reader
        self._clock = clock
        self.initial_lookback = initial_lookback
        self.expanded_lookback = expanded_lookback
        self.max_records = max_records
        self._events = {
            schema.name: _codec_w3.eth.contract(abi=[schema.abi]).events.Submitted()
            for schema in PLAIN_SCHEMAS + CONFIDENTIAL_SCHEMAS
        }

    def today_index(self) -> int:
        return int(self._clock()) // SECONDS_PER_DAY

    async def fetch(self, account: str, plain_address: Optional[str],
                    confidential_address: Optional[str]) -> ReconciliationResult:
        """
        Recent submissions (newest day first, at most max_records) plus the
        submitted-today flag for the account.

        Raises:
            ReconciliationUnavailable: a top-level provider call failed
        """
        today = self.today_index()

        # The status check runs alongside the log queries and never blocks them
        status_task = asyncio.ensure_future(
            self._submitted_today(account, plain_address, confidential_address, today)
        )
        try:
            records, stats = await self._collect(plain_address, confidential_address)
        except Exception as e:
            status_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await status_task
            logger.error(f"Could not query submission events: {e}")
            raise ReconciliationUnavailable(f"Results temporarily unavailable: {e}") from e

        submitted_today = await status_task
        logger.info(
            f"Reconciled {len(records)} records "
            f"(plain={stats['plain_records']}, confidential={stats['confidential_records']}, "
            f"dropped={stats['dropped']})"
        )
        return ReconciliationResult(records=records, submitted_today=submitted_today,
                                    today_index=today, stats=stats)

    # ------------------------------------------------------------------
    # log collection
    # ------------------------------------------------------------------

    async def _has_code(self, address: Optional[str]) -> bool:
        if not is_configured_address(address):
            return False
        code = await self.reader.get_code(address)
        return len(code) > 0

    async def _collect(self, plain_address: Optional[str],
                       confidential_address: Optional[str]) -> Tuple[List[CanonicalSubmissionRecord], Dict[str, Any]]:
        latest = await self.reader.block_number()
        plain_live, confidential_live = await asyncio.gather(
            self._has_code(plain_address), self._has_code(confidential_address)
        )
        logger.debug(f"Latest block {latest}; plain code={plain_live}, confidential code={confidential_live}")

        async def no_logs() -> List[Dict[str, Any]]:
            return []

        plain_logs, confidential_logs = await asyncio.gather(
            self._query_with_fallback(plain_address, PLAIN_SCHEMAS, latest) if plain_live else no_logs(),
            self._query_with_fallback(confidential_address, CONFIDENTIAL_SCHEMAS, latest)
            if confidential_live else no_logs(),
        )

        plain_records, plain_dropped = self._decode_all(plain_logs, PLAIN_SCHEMAS)
        conf_records, conf_dropped = self._decode_all(confidential_logs, CONFIDENTIAL_SCHEMAS)

        merged = sorted(plain_records + conf_records, key=lambda r: r.day_index, reverse=True)
        stats = {
            'latest_block': latest,
            'plain_logs': len(plain_logs),
            'confidential_logs': len(confidential_logs),
            'plain_records': len(plain_records),
            'confidential_records': len(conf_records),
            'dropped': plain_dropped + conf_dropped,
        }
        return merged[:self.max_records], stats

    async def _query_with_fallback(self, address: str, schemas: Sequence[EventSchema],
                                   latest: int) -> List[Dict[str, Any]]:
        """Query the initial window and widen it once if nothing was found"""
        from_block = max(0, latest - self.initial_lookback)
        logs = await self._query_schemas(address, schemas, from_block, latest)

        if not logs and from_block > 0:
            from_block = max(0, latest - self.expanded_lookback)
            logger.info(f"No events for {address[:10]}..., widening window to {from_block}-{latest}")
            logs = await self._query_schemas(address, schemas, from_block, latest)
        return logs

    async def _query_schemas(self, address: str, schemas: Sequence[EventSchema],
                             from_block: int, to_block: int) -> List[Dict[str, Any]]:
        checksum = to_checksum_address(address)
        results = await asyncio.gather(*[
            self.reader.get_logs({
                'address': checksum,
                'topics': [schema.topic],
                'fromBlock': from_block,
                'toBlock': to_block,
            })
            for schema in schemas
        ])

        # Concatenate in schema order regardless of completion order
        logs: List[Dict[str, Any]] = []
        for schema, schema_logs in zip(schemas, results):
            logger.debug(f"{schema.name}: {len(schema_logs)} logs in {from_block}-{to_block}")
            logs.extend(schema_logs)

        unique = dedupe_logs(logs)
        if len(unique) != len(logs):
            logger.debug(f"Deduplicated {len(logs)} -> {len(unique)} logs")
        return unique

    # ------------------------------------------------------------------
    # decoding
    # ------------------------------------------------------------------

    def _decode_all(self, logs: List[Dict[str, Any]],
                    schemas: Sequence[EventSchema]) -> Tuple[List[CanonicalSubmissionRecord], int]:
        records = []
        dropped = 0
        for log in logs:
            record = self.decode_log(log, schemas)
            if record is None:
                dropped += 1
            else:
                records.append(record)
        return records, dropped

    def decode_log(self, log: Dict[str, Any],
                   schemas: Sequence[EventSchema]) -> Optional[CanonicalSubmissionRecord]:
        """First schema that decodes wins; None (logged) when none does"""
        for schema in schemas:
            try:
                decoded = self._events[schema.name].process_log(log)
                return self._to_record(log, decoded['args'], schema)
            except Exception as e:
                logger.debug(f"Schema {schema.name} rejected log: {e}")
                continue

        logger.warning(
            f"Dropping undecodable log {_hex(log.get('transactionHash', ''))}:{log.get('logIndex')}"
        )
        return None

    def _to_record(self, log: Dict[str, Any], args: Dict[str, Any],
                   schema: EventSchema) -> CanonicalSubmissionRecord:
        if 'stepsHandle' in args:
            steps = decode_handle(args['stepsHandle'])
            reward = args['reward']
        elif 'stepsPlain' in args:
            steps = args['stepsPlain']
            reward = args['rewardPlainApprox']
        else:
            steps = args['steps']
            reward = args['reward']

        return CanonicalSubmissionRecord(
            transaction_id=_hex(log['transactionHash']),
            user=args['user'],
            day_index=int(args['dayIndex']),
            steps=int(steps),
            reward=str(reward),
            log_index=int(log['logIndex']),
            source=schema.source,
        )

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    async def _last_submit_day(self, address: Optional[str], account: str) -> int:
        if not is_configured_address(address):
            return 0
        try:
            data = await self.reader.call(address, last_submit_day_calldata(account))
            return decode_uint256(data)
        except Exception as e:
            logger.debug(f"lastSubmitDay unavailable on {address}: {e}")
            return 0

    async def _submitted_today(self, account: str, plain_address: Optional[str],
                               confidential_address: Optional[str], today: int) -> bool:
        days = await asyncio.gather(
            self._last_submit_day(plain_address, account),
            self._last_submit_day(confidential_address, account),
        )
        return any(day == today for day in days)
