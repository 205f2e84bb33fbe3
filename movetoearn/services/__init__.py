"""
Step-count submission and reconciliation services.

- encoder: confidential input encoding (simulated / relayer backed)
- submission: single-flight, rate-limited submission orchestrator
- reconciler: multi-schema Submitted event reconciliation
- ledger: web3.py signer and reader collaborators
"""

from .models import (
    # Enums
    ContractKind,
    SubmissionState,
    ErrorKind,
    RecordSource,
    # Dataclasses
    EncryptedPayload,
    SubmissionRequest,
    ClassifiedError,
    RetryState,
    SubmissionOutcome,
    SessionSubmissionGuard,
    CanonicalSubmissionRecord,
    ReconciliationResult,
    TokenSummary,
)
from .errors import classify_error, ReconciliationUnavailable, TransactionReverted
from .encoder import (
    ConfidentialEncoder,
    SimulatedEncoder,
    RelayerEncoder,
    decode_handle,
    select_encoder,
)
from .relayer_client import RelayerClient
from .ledger import Signer, LedgerReader, Web3Signer, Web3LedgerReader, create_web3
from .submission import SubmissionOrchestrator, parse_step_count
from .reconciler import EventReconciler
from .token_service import fetch_token_summary

__all__ = [
    'ContractKind',
    'SubmissionState',
    'ErrorKind',
    'RecordSource',
    'EncryptedPayload',
    'SubmissionRequest',
    'ClassifiedError',
    'RetryState',
    'SubmissionOutcome',
    'SessionSubmissionGuard',
    'CanonicalSubmissionRecord',
    'ReconciliationResult',
    'TokenSummary',
    'classify_error',
    'ReconciliationUnavailable',
    'TransactionReverted',
    'ConfidentialEncoder',
    'SimulatedEncoder',
    'RelayerEncoder',
    'decode_handle',
    'select_encoder',
    'RelayerClient',
    'Signer',
    'LedgerReader',
    'Web3Signer',
    'Web3LedgerReader',
    'create_web3',
    'SubmissionOrchestrator',
    'parse_step_count',
    'EventReconciler',
    'fetch_token_summary',
]
