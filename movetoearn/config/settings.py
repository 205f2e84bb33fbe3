"""
Runtime settings for the movetoearn client.

Values are resolved from the network profile, the deployment file written by
the contract deployment scripts (deployments-<network>.json) and finally the
environment, which always wins. A .env file is loaded on first use.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from .network_config import DEFAULT_NETWORK, NETWORK_PROFILES, ZERO_ADDRESS

logger = logging.getLogger(__name__)


@dataclass
class ContractAddresses:
    """Resolved contract addresses for the selected network"""
    token: Optional[str] = None
    rewards: Optional[str] = None
    enc_rewards: Optional[str] = None


@dataclass
class Settings:
    network: str
    chain_id: int
    rpc_url: str
    explorer_base: str = ""
    contracts: ContractAddresses = field(default_factory=ContractAddresses)
    private_key: Optional[str] = None
    account: Optional[str] = None
    force_mock: Optional[bool] = None
    debug: bool = False

    @property
    def is_local_chain(self) -> bool:
        return self.network == "local"

    def explorer_tx_url(self, tx_hash: str) -> str:
        """Explorer link for a transaction, empty when the network has none"""
        if not self.explorer_base:
            return ""
        return f"{self.explorer_base}/tx/{tx_hash}"


def is_configured_address(address: Optional[str]) -> bool:
    """True for a non-empty address other than the all-zero address"""
    if not address:
        return False
    return address.strip().lower() != ZERO_ADDRESS.lower()


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value.strip() == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    logger.warning(f"Ignoring unrecognised boolean value: {value!r}")
    return None


def load_deployment_file(network_name: str, directory: Optional[str] = None) -> Dict[str, str]:
    """
    Load contract addresses saved by the deployment scripts.

    Args:
        network_name: Deployment network name ("localhost", "sepolia")
        directory: Folder holding deployments-<network>.json (defaults to cwd)

    Returns:
        Dict with any of token / rewards / encRewards, empty if the file is missing
    """
    path = Path(directory or os.getcwd()) / f"deployments-{network_name}.json"
    if not path.exists():
        logger.debug(f"No deployment file at {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read deployment file {path}: {e}")
        return {}

    addresses = {k: data[k] for k in ("token", "rewards", "encRewards") if data.get(k)}
    logger.info(f"Loaded {len(addresses)} contract addresses from {path.name}")
    return addresses


def load_settings(network: Optional[str] = None, env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from profile, deployment file and environment.

    Environment variables:
        MOVETOEARN_NETWORK     local | sepolia
        MOVETOEARN_RPC_URL     overrides the profile RPC endpoint
        DEPLOYMENTS_DIR        folder with deployments-<network>.json
        TOKEN_ADDRESS, REWARDS_ADDRESS, ENC_REWARDS_ADDRESS
        PRIVATE_KEY            local signing key (node accounts are used otherwise)
        ACCOUNT_ADDRESS        account to query when no key is configured
        FORCE_MOCK             true | false, forces the confidential encoder variant
        MOVETOEARN_DEBUG       1 to enable verbose file logging
    """
    load_dotenv(env_file)

    name = (network or os.getenv("MOVETOEARN_NETWORK") or DEFAULT_NETWORK).lower()
    if name not in NETWORK_PROFILES:
        raise ValueError(f"Unknown network '{name}'. Choose one of: {', '.join(NETWORK_PROFILES)}")
    profile = NETWORK_PROFILES[name]

    deployed = load_deployment_file(profile["network"], os.getenv("DEPLOYMENTS_DIR"))
    contracts = ContractAddresses(
        token=os.getenv("TOKEN_ADDRESS") or deployed.get("token"),
        rewards=os.getenv("REWARDS_ADDRESS") or deployed.get("rewards"),
        enc_rewards=os.getenv("ENC_REWARDS_ADDRESS") or deployed.get("encRewards"),
    )

    settings = Settings(
        network=name,
        chain_id=profile["chain_id"],
        rpc_url=os.getenv("MOVETOEARN_RPC_URL", profile["rpc_url"]),
        explorer_base=profile["explorer_base"],
        contracts=contracts,
        private_key=os.getenv("PRIVATE_KEY") or None,
        account=os.getenv("ACCOUNT_ADDRESS") or None,
        force_mock=_parse_bool(os.getenv("FORCE_MOCK")),
        debug=bool(_parse_bool(os.getenv("MOVETOEARN_DEBUG"))),
    )
    logger.debug(
        f"Settings resolved: network={settings.network} chain={settings.chain_id} "
        f"rewards={contracts.rewards} encRewards={contracts.enc_rewards}"
    )
    return settings
