"""
Configuration loading and validation for the arbitrage engine.
"""

import os
from typing import Any, Dict, List, Mapping, Optional

import yaml
from eth_account import Account
from web3 import Web3

from amm_arbitrage.constants import (
    DEFAULT_RELAY_URL,
    UNISWAP_FLASH_QUERY_ADDRESS,
    WETH_ADDRESS,
)
from amm_arbitrage.exceptions import ConfigurationError

# Environment variables that override config file values
ENV_OVERRIDES = {
    "ETHEREUM_RPC_URL": "rpc_url",
    "PRIVATE_KEY": "private_key",
    "BUNDLE_EXECUTOR_ADDRESS": "bundle_executor_address",
    "FLASHBOTS_RELAY_SIGNING_KEY": "flashbots_relay_signing_key",
    "FLASHBOTS_RELAY_URL": "relay_url",
    "MINER_REWARD_PERCENTAGE": "miner_reward_percentage",
    "PORT": "port",
}


class ConfigError(ConfigurationError):
    """Raised when config is invalid or missing required fields."""

    pass


class ArbitrageConfig:
    """
    Parsed and validated configuration for the arbitrage engine.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint of the Ethereum node
        private_key: Key of the account that signs arbitrage transactions
        bundle_executor_address: Default executor contract
        executors: Dict of {token_address -> executor_address}
        flashbots_relay_signing_key: Relay identity key (reputation only)
        relay_url: Flashbots relay endpoint
        miner_reward_percentage: Percent of profit paid to the block producer
        reference_token: Asset every opportunity is measured in (WETH)
        flash_query_address: UniswapFlashQuery helper, or None for per-pair calls
        pairs: List of {address, token0, token1, protocol}
        host / port: Ingestion server bind address
        poll_sec: Seconds between head polls
        batch_on_block: Run the batch submission path on every new block
        rpc_timeout_sec / relay_timeout_sec: Per-request timeouts
        metrics_port: Prometheus server port, or None to disable it
    """

    def __init__(self, config_dict: Dict[str, Any], env: Optional[Mapping[str, str]] = None):
        """
        Parse and validate config from dictionary.

        Args:
            config_dict: Loaded YAML config
            env: Environment whose ENV_OVERRIDES variables take precedence

        Raises:
            ConfigError: If required fields missing or invalid
        """
        config_dict = self._apply_env(config_dict, env or {})

        # Node and keys
        self.rpc_url: str = self._get_required(config_dict, "rpc_url", str)
        self.private_key: str = self._get_required(config_dict, "private_key", str)
        self.bundle_executor_address: str = self._parse_address(
            self._get_required(config_dict, "bundle_executor_address", str),
            "bundle_executor_address",
        )

        signing_key = config_dict.get("flashbots_relay_signing_key")
        if signing_key is None:
            # The relay identity only builds reputation; a throwaway key works
            signing_key = Web3.to_hex(Account.create().key)
        self.flashbots_relay_signing_key: str = str(signing_key)
        self.relay_url: str = str(config_dict.get("relay_url", DEFAULT_RELAY_URL))

        self.miner_reward_percentage: int = self._parse_percentage(
            config_dict.get("miner_reward_percentage", 0)
        )

        # Markets
        self.reference_token: str = self._parse_address(
            config_dict.get("reference_token", WETH_ADDRESS), "reference_token"
        )
        flash_query = config_dict.get("flash_query_address", UNISWAP_FLASH_QUERY_ADDRESS)
        self.flash_query_address: Optional[str] = (
            self._parse_address(flash_query, "flash_query_address") if flash_query else None
        )
        self.pairs: List[Dict[str, str]] = self._parse_pairs(
            self._get_required(config_dict, "pairs", list)
        )
        self.executors: Dict[str, str] = self._parse_executors(
            config_dict.get("executors")
        )

        # Loop and servers
        self.host: str = str(config_dict.get("host", "0.0.0.0"))
        self.port: int = self._parse_int(config_dict.get("port", 8080), "port")
        self.poll_sec: float = float(config_dict.get("poll_sec", 2.0))
        self.batch_on_block: bool = bool(config_dict.get("batch_on_block", False))
        self.rpc_timeout_sec: float = float(config_dict.get("rpc_timeout_sec", 10))
        self.relay_timeout_sec: float = float(config_dict.get("relay_timeout_sec", 10))
        metrics_port = config_dict.get("metrics_port")
        self.metrics_port: Optional[int] = (
            self._parse_int(metrics_port, "metrics_port") if metrics_port is not None else None
        )

        if self.poll_sec <= 0:
            raise ConfigError(f"poll_sec must be positive, got {self.poll_sec}")

    @staticmethod
    def _apply_env(config_dict: Dict[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
        merged = dict(config_dict)
        for env_name, key in ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value:
                merged[key] = value
        return merged

    @staticmethod
    def _get_required(d: Dict, key: str, expected_type: type) -> Any:
        """Get required config field with type validation."""
        if key not in d or d[key] is None:
            raise ConfigError(f"Missing required config field: {key}")
        val = d[key]
        if not isinstance(val, expected_type):
            raise ConfigError(
                f"Config field '{key}' must be {expected_type.__name__}, got {type(val).__name__}"
            )
        return val

    @staticmethod
    def _parse_int(value: Any, key: str) -> int:
        if isinstance(value, bool):
            raise ConfigError(f"Config field '{key}' must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Config field '{key}' must be an integer, got {value!r}") from e

    @classmethod
    def _parse_percentage(cls, value: Any) -> int:
        percentage = cls._parse_int(value, "miner_reward_percentage")
        if not 0 <= percentage <= 100:
            raise ConfigError(
                f"miner_reward_percentage must be between 0 and 100, got {percentage}"
            )
        return percentage

    @staticmethod
    def _parse_address(value: Any, key: str) -> str:
        if not isinstance(value, str) or not Web3.is_address(value):
            raise ConfigError(f"Config field '{key}' is not a valid address: {value!r}")
        return Web3.to_checksum_address(value)

    @classmethod
    def _parse_pairs(cls, pairs_raw: List[Any]) -> List[Dict[str, str]]:
        """Parse and validate the configured V2 pairs."""
        pairs = []
        for i, pair in enumerate(pairs_raw):
            if not isinstance(pair, dict):
                raise ConfigError(f"Pair config {i} must be a dict")

            missing = [k for k in ("address", "token0", "token1") if not pair.get(k)]
            if missing:
                raise ConfigError(
                    f"Pair config {i} missing required fields ({', '.join(missing)})"
                )

            pairs.append(
                {
                    "address": cls._parse_address(pair["address"], f"pairs[{i}].address"),
                    "token0": cls._parse_address(pair["token0"], f"pairs[{i}].token0"),
                    "token1": cls._parse_address(pair["token1"], f"pairs[{i}].token1"),
                    "protocol": str(pair.get("protocol", "uniswap_v2")),
                }
            )

        if not pairs:
            raise ConfigError("At least one pair must be configured")
        return pairs

    def _parse_executors(self, executors_raw: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Token -> executor map; defaults to the bundle executor for the reference token."""
        if executors_raw is None:
            return {self.reference_token: self.bundle_executor_address}
        if not isinstance(executors_raw, dict):
            raise ConfigError("executors must be a mapping of token address to executor address")

        return {
            self._parse_address(token, "executors"): self._parse_address(
                executor, f"executors[{token}]"
            )
            for token, executor in executors_raw.items()
        }


def load_config(config_path: str, env: Optional[Mapping[str, str]] = None) -> ArbitrageConfig:
    """
    Load and validate config from YAML file.

    Args:
        config_path: Path to config YAML file
        env: Environment for overrides (defaults to os.environ)

    Returns:
        Validated ArbitrageConfig instance

    Raises:
        ConfigError: If config invalid or file not found
    """
    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigError("Config file must contain a YAML dictionary")

    return ArbitrageConfig(config_dict, env=os.environ if env is None else env)
