"""
Data structures shared by the submission and reconciliation services.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd


# ============================================================================
# ENUMS
# ============================================================================

class ContractKind(Enum):
    """Submission path / target contract"""
    PLAIN = "plain"
    CONFIDENTIAL = "confidential"


class SubmissionState(Enum):
    """Orchestrator states for a single submit() call"""
    IDLE = "idle"
    RATE_LIMITED = "rate_limited"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(Enum):
    """Classified failure kinds surfaced to callers"""
    TRAFFIC_PROTECTION_REJECTED = "traffic_protection_rejected"
    ALREADY_SUBMITTED_TODAY = "already_submitted_today"
    USER_REJECTED_SIGNATURE = "user_rejected_signature"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NETWORK_UNAVAILABLE = "network_unavailable"
    UNKNOWN_RPC_ERROR = "unknown_rpc_error"
    CONTRACT_EXECUTION_REVERTED = "contract_execution_reverted"
    NO_CONTRACT_CONFIGURED = "no_contract_configured"
    RATE_LIMITED = "rate_limited"
    ALREADY_IN_PROGRESS = "already_in_progress"
    EMPTY_INPUT = "empty_input"


class RecordSource(Enum):
    """Which event schema produced a canonical record"""
    PLAIN = "plain"
    CONFIDENTIAL_HANDLE = "confidential_handle"
    CONFIDENTIAL_PLAIN = "confidential_plain"


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class EncryptedPayload:
    """Opaque confidential input: 32-byte handle plus a fixed-length proof (0x hex)"""
    handle: str
    proof: str

    @property
    def handle_bytes(self) -> bytes:
        return bytes.fromhex(self.handle[2:])

    @property
    def proof_bytes(self) -> bytes:
        return bytes.fromhex(self.proof[2:])


@dataclass
class SubmissionRequest:
    user_address: str
    step_count: int
    target_kind: ContractKind
    contract_address: str


@dataclass
class ClassifiedError:
    """Result of the error classification boundary"""
    kind: ErrorKind
    message: str
    detail: str = ""

    @property
    def is_traffic_protection(self) -> bool:
        return self.kind == ErrorKind.TRAFFIC_PROTECTION_REJECTED


@dataclass
class RetryState:
    attempt: int = 1
    classified_error: Optional[ClassifiedError] = None
    next_delay_ms: int = 0


@dataclass
class SubmissionOutcome:
    """
    Result of a submit() call.
    status is "success" (transaction fields set) or "error" (error_kind/message set).
    """
    status: str
    transaction_id: Optional[str] = None
    confirmed_block: Optional[int] = None
    gas_used: Optional[int] = None
    path: Optional[ContractKind] = None
    attempts: int = 0
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    retry_after_seconds: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **kwargs) -> "SubmissionOutcome":
        return cls(status="error", error_kind=kind, message=message, **kwargs)

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'transaction_id': self.transaction_id,
            'confirmed_block': self.confirmed_block,
            'gas_used': self.gas_used,
            'path': self.path.value if self.path else None,
            'attempts': self.attempts,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'message': self.message,
            'retry_after_seconds': self.retry_after_seconds,
        }


@dataclass
class SessionSubmissionGuard:
    """Session-wide single-flight and rate-limit state, never persisted"""
    is_submitting: bool = False
    last_submit_timestamp: float = 0.0  # milliseconds


@dataclass
class CanonicalSubmissionRecord:
    """Schema-independent view of one Submitted event"""
    transaction_id: str
    user: str
    day_index: int
    steps: int
    reward: str  # wei as string, may exceed float precision
    log_index: int = -1
    source: RecordSource = RecordSource.PLAIN

    @property
    def display_key(self) -> str:
        """Row key for display tables"""
        return f"{self.transaction_id}:{self.user}"

    def to_dict(self) -> dict:
        return {
            'tx': self.transaction_id,
            'user': self.user,
            'day_index': self.day_index,
            'steps': self.steps,
            'reward': self.reward,
            'log_index': self.log_index,
            'source': self.source.value,
        }


@dataclass
class ReconciliationResult:
    records: List[CanonicalSubmissionRecord] = field(default_factory=list)
    submitted_today: bool = False
    today_index: int = 0
    stats: Dict[str, Any] = field(default_factory=dict)

    def to_dataframe(self) -> pd.DataFrame:
        """Records as a display table; object dtype keeps uint64/uint256 values exact"""
        columns = ['tx', 'user', 'day_index', 'steps', 'reward', 'log_index', 'source']
        if not self.records:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([r.to_dict() for r in self.records], columns=columns, dtype=object,
                            index=[r.display_key for r in self.records])


@dataclass
class TokenSummary:
    symbol: str
    decimals: int
    balance: Any  # Decimal, formatted units
