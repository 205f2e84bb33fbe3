"""
Network Configuration Module

Contains the ledger constants, contract ABIs, call selectors and the network
profiles used by the submission and reconciliation services.
"""

from decimal import Decimal

# Special Addresses
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Network Profiles
# Contract addresses are filled from deployments-<network>.json or the
# environment (see settings.py); the profiles only carry the static parts.
NETWORK_PROFILES = {
    "local": {
        "network": "localhost",
        "chain_id": 31337,
        "rpc_url": "http://localhost:8545",
        "explorer_base": "",
    },
    "sepolia": {
        "network": "sepolia",
        "chain_id": 11155111,
        "rpc_url": "https://ethereum-sepolia-rpc.publicnode.com",
        "explorer_base": "https://sepolia.etherscan.io",
    },
}

DEFAULT_NETWORK = "local"
LOCAL_CHAIN_ID = 31337

# Confidential backend (relayer) configuration for Sepolia
RELAYER_CONFIG = {
    "protocol_id": 10001,
    "acl": "0x687820221192C5B662b25367F70076A37bc79b6c",
    "coprocessor": "0x848B0066793BcC60346Da1F49049357399B8D595",
    "decryption_oracle": "0xa02Cda4Ca3a71D7C46997716F4283aa851C28812",
    "kms_verifier": "0x1364cBBf2cDF5032C47d8226a6f6FBD2AFCDacAC",
}

# Function signatures (selectors are derived in ledger.py)
SUBMIT_PLAIN_SIGNATURE = "submitDaily(uint256)"
SUBMIT_CONFIDENTIAL_SIGNATURE = "submitDailyEncrypted(bytes32,bytes)"
LAST_SUBMIT_DAY_SIGNATURE = "lastSubmitDay(address)"

ERC20_BALANCE_OF_SIGNATURE = "balanceOf(address)"
ERC20_DECIMALS_SIGNATURE = "decimals()"
ERC20_SYMBOL_SIGNATURE = "symbol()"

# Event ABIs for Submitted(...)
PLAIN_SUBMITTED_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "internalType": "address", "name": "user", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "dayIndex", "type": "uint256"},
        {"indexed": False, "internalType": "uint256", "name": "steps", "type": "uint256"},
        {"indexed": False, "internalType": "uint256", "name": "reward", "type": "uint256"},
    ],
    "name": "Submitted",
    "type": "event",
}

# Mock confidential contract: handle + proof + exact reward
CONFIDENTIAL_HANDLE_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "internalType": "address", "name": "user", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "dayIndex", "type": "uint256"},
        {"indexed": False, "internalType": "bytes32", "name": "stepsHandle", "type": "bytes32"},
        {"indexed": False, "internalType": "bytes", "name": "proof", "type": "bytes"},
        {"indexed": False, "internalType": "uint256", "name": "reward", "type": "uint256"},
    ],
    "name": "Submitted",
    "type": "event",
}

# FHE confidential contract: plaintext analogue + approximate reward
CONFIDENTIAL_PLAIN_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "internalType": "address", "name": "user", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "dayIndex", "type": "uint256"},
        {"indexed": False, "internalType": "uint64", "name": "stepsPlain", "type": "uint64"},
        {"indexed": False, "internalType": "uint64", "name": "rewardPlainApprox", "type": "uint64"},
    ],
    "name": "Submitted",
    "type": "event",
}

PLAIN_SUBMITTED_SIGNATURE = "Submitted(address,uint256,uint256,uint256)"
CONFIDENTIAL_HANDLE_SIGNATURE = "Submitted(address,uint256,bytes32,bytes,uint256)"
CONFIDENTIAL_PLAIN_SIGNATURE = "Submitted(address,uint256,uint64,uint64)"

# Query Configuration
INITIAL_LOOKBACK_BLOCKS = 10000
EXPANDED_LOOKBACK_BLOCKS = 20000
MAX_RESULT_RECORDS = 20
SECONDS_PER_DAY = 86400

# Submission Configuration
MIN_SUBMIT_INTERVAL_MS = 3000
TRAFFIC_RETRY_DELAYS = (30, 60)  # seconds, after attempt 1 and attempt 2
CONFIDENTIAL_GAS_LIMIT = 300000
RECEIPT_TIMEOUT = 120  # seconds
MAX_UINT64 = 2**64 - 1

# Simulated encoder layout (hex digits)
HANDLE_HEX_DIGITS = 64
VALUE_HEX_DIGITS = 16
TIMESTAMP_HEX_DIGITS = 8
NONCE_HEX_DIGITS = 8
PROOF_BYTES = 32
PROOF_MARKER = "deadbeef"

# Reward token defaults when the token contract is unavailable
DEFAULT_TOKEN_SYMBOL = "MOVE"
DEFAULT_TOKEN_DECIMALS = 18
DEFAULT_TOKEN_BALANCE = Decimal(0)
