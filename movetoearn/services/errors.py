"""
Failure classification for ledger submissions.

classify_error() is the single place where raw failure text is inspected.
Structured fields (wallet/RPC error codes, JSON-RPC error payloads, the
circuit breaker flag, transport exceptions) are checked first; substring
heuristics are only a fallback for unstructured errors.
"""

import logging
from typing import Any, Optional

import aiohttp
from web3.exceptions import TimeExhausted

from .models import ClassifiedError, ErrorKind

logger = logging.getLogger(__name__)


class TransactionReverted(Exception):
    """Raised when a mined transaction reports status 0"""
    code = "CALL_EXCEPTION"

    def __init__(self, tx_hash: str, reason: str = "execution reverted"):
        self.tx_hash = tx_hash
        self.reason = reason
        super().__init__(f"{reason} (tx {tx_hash})")


class ReconciliationUnavailable(Exception):
    """A top-level provider call failed; results are temporarily unavailable"""


# Wallet (EIP-1193 / ethers) and JSON-RPC codes
USER_REJECTED_CODES = {4001, "ACTION_REJECTED"}
INSUFFICIENT_FUNDS_CODES = {"INSUFFICIENT_FUNDS"}
NETWORK_CODES = {"NETWORK_ERROR", "TIMEOUT", "SERVER_ERROR", 4900, 4901}
UNKNOWN_CODES = {"UNKNOWN_ERROR"}
REVERT_CODES = {"CALL_EXCEPTION", 3}

# Fallback substrings, checked in priority order
TEXT_RULES = [
    ("circuit breaker", ErrorKind.TRAFFIC_PROTECTION_REJECTED),
    ("execution prevented", ErrorKind.TRAFFIC_PROTECTION_REJECTED),
    ("already submitted today", ErrorKind.ALREADY_SUBMITTED_TODAY),
    ("user rejected", ErrorKind.USER_REJECTED_SIGNATURE),
    ("user denied", ErrorKind.USER_REJECTED_SIGNATURE),
    ("insufficient funds", ErrorKind.INSUFFICIENT_FUNDS),
    ("network", ErrorKind.NETWORK_UNAVAILABLE),
    ("execution reverted", ErrorKind.CONTRACT_EXECUTION_REVERTED),
    ("unknown_error", ErrorKind.UNKNOWN_RPC_ERROR),
]

TRAFFIC_PROTECTION_GUIDANCE = (
    "Wallet traffic protection (circuit breaker) blocked the transaction. "
    "Reload the page or disconnect and reconnect the wallet; "
    "the breaker usually resets by itself after a few minutes."
)

MESSAGES = {
    ErrorKind.TRAFFIC_PROTECTION_REJECTED: TRAFFIC_PROTECTION_GUIDANCE,
    ErrorKind.ALREADY_SUBMITTED_TODAY: "You already submitted today. Please try again tomorrow.",
    ErrorKind.USER_REJECTED_SIGNATURE: "You canceled the transaction.",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient balance for gas.",
    ErrorKind.NETWORK_UNAVAILABLE: "Network unavailable. Check your connection or RPC endpoint and retry later.",
    ErrorKind.UNKNOWN_RPC_ERROR: "Unknown RPC error, possibly a node problem. Please retry later.",
    ErrorKind.NO_CONTRACT_CONFIGURED: "No contract configured for this network.",
    ErrorKind.ALREADY_IN_PROGRESS: "Submission already in progress.",
    ErrorKind.EMPTY_INPUT: "Enter a valid step count.",
}


def message_for(kind: ErrorKind, detail: str = "") -> str:
    """User-facing message for a classified kind"""
    if kind == ErrorKind.CONTRACT_EXECUTION_REVERTED:
        return f"Contract execution failed: {detail}" if detail else "Contract execution failed."
    if kind == ErrorKind.RATE_LIMITED:
        return f"Please wait {detail} seconds before submitting again."
    return MESSAGES[kind]


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _rpc_error(exc: BaseException) -> Optional[dict]:
    """JSON-RPC error object carried by web3 RPC exceptions or dict-shaped args"""
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict) and isinstance(response.get("error"), dict):
        return response["error"]
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return None


def _is_broken_circuit(exc: BaseException, rpc_error: Optional[dict]) -> bool:
    for data in (_field(exc, "data"), _field(rpc_error, "data") if rpc_error else None):
        cause = _field(data, "cause") if data is not None else None
        if cause is not None and _field(cause, "isBrokenCircuitError"):
            return True
    return False


def _error_text(exc: BaseException, rpc_error: Optional[dict]) -> str:
    parts = []
    message = _field(exc, "message")
    if isinstance(message, str) and message:
        parts.append(message)
    if rpc_error and isinstance(rpc_error.get("message"), str):
        parts.append(rpc_error["message"])
    text = str(exc)
    if text and text not in parts:
        parts.append(text)
    return " | ".join(parts)


def _classify_structured(exc: BaseException, rpc_error: Optional[dict]) -> Optional[ErrorKind]:
    if _is_broken_circuit(exc, rpc_error):
        return ErrorKind.TRAFFIC_PROTECTION_REJECTED

    if isinstance(exc, (ConnectionError, TimeoutError, aiohttp.ClientConnectionError, TimeExhausted)):
        return ErrorKind.NETWORK_UNAVAILABLE

    codes = [_field(exc, "code")]
    if rpc_error:
        codes.append(rpc_error.get("code"))

    for code in codes:
        if not isinstance(code, (int, str)):
            continue
        if code in USER_REJECTED_CODES:
            return ErrorKind.USER_REJECTED_SIGNATURE
        if code in INSUFFICIENT_FUNDS_CODES:
            return ErrorKind.INSUFFICIENT_FUNDS
        if code in NETWORK_CODES:
            return ErrorKind.NETWORK_UNAVAILABLE
        if code in REVERT_CODES:
            return ErrorKind.CONTRACT_EXECUTION_REVERTED
        if code in UNKNOWN_CODES:
            return ErrorKind.UNKNOWN_RPC_ERROR
    return None


def _classify_text(text: str) -> Optional[ErrorKind]:
    lowered = text.lower()
    for needle, kind in TEXT_RULES:
        if needle in lowered:
            return kind
    return None


def classify_error(exc: BaseException) -> ClassifiedError:
    """
    Map a send/confirmation failure to one of the named ErrorKinds.

    Args:
        exc: Exception raised by the signer or provider

    Returns:
        ClassifiedError with kind, user-facing message and the raw detail text
    """
    rpc_error = _rpc_error(exc)
    detail = _error_text(exc, rpc_error)

    kind = _classify_structured(exc, rpc_error)
    text_kind = _classify_text(detail)

    if kind is None:
        kind = text_kind or ErrorKind.UNKNOWN_RPC_ERROR
    elif kind == ErrorKind.CONTRACT_EXECUTION_REVERTED and text_kind == ErrorKind.ALREADY_SUBMITTED_TODAY:
        # The daily limit is reported as a revert reason
        kind = ErrorKind.ALREADY_SUBMITTED_TODAY
    elif kind == ErrorKind.UNKNOWN_RPC_ERROR and text_kind == ErrorKind.TRAFFIC_PROTECTION_REJECTED:
        kind = ErrorKind.TRAFFIC_PROTECTION_REJECTED

    logger.debug(f"Classified {type(exc).__name__} as {kind.value}: {detail[:200]}")
    return ClassifiedError(kind=kind, message=message_for(kind, detail), detail=detail)
