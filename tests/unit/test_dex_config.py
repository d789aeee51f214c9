"""
Unit tests for dex/config.py

Verifies that configuration loading, validation and environment overrides
work correctly.
"""

import os
import tempfile
import unittest

from web3 import Web3

from amm_arbitrage.constants import DEFAULT_RELAY_URL, WETH_ADDRESS
from amm_arbitrage.exceptions import ConfigurationError
from dex.config import ArbitrageConfig, ConfigError, load_config

EXECUTOR = "0xda0a57b710768ae17941a9fa33f8b720c8bd9ddd"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"


def _config_dict(**overrides):
    config = {
        "rpc_url": "http://127.0.0.1:8545",
        "private_key": "0x" + "11" * 32,
        "bundle_executor_address": EXECUTOR,
        "pairs": [
            {
                "address": "0x1111111111111111111111111111111111111111",
                "token0": DAI,
                "token1": WETH_ADDRESS,
                "protocol": "uniswap_v2",
            },
            {
                "address": "0x2222222222222222222222222222222222222222",
                "token0": DAI,
                "token1": WETH_ADDRESS,
            },
        ],
    }
    config.update(overrides)
    return config


class TestArbitrageConfigDefaults(unittest.TestCase):
    """Test default values for optional fields."""

    def test_defaults(self):
        config = ArbitrageConfig(_config_dict())

        self.assertEqual(config.relay_url, DEFAULT_RELAY_URL)
        self.assertEqual(config.miner_reward_percentage, 0)
        self.assertEqual(config.reference_token, WETH_ADDRESS)
        self.assertEqual(config.host, "0.0.0.0")
        self.assertEqual(config.port, 8080)
        self.assertEqual(config.poll_sec, 2.0)
        self.assertFalse(config.batch_on_block)
        self.assertEqual(config.rpc_timeout_sec, 10)
        self.assertEqual(config.relay_timeout_sec, 10)
        self.assertIsNone(config.metrics_port)
        self.assertIsNotNone(config.flash_query_address)

    def test_executor_defaults_to_bundle_executor_for_reference_token(self):
        config = ArbitrageConfig(_config_dict())
        self.assertEqual(
            config.executors,
            {WETH_ADDRESS: Web3.to_checksum_address(EXECUTOR)},
        )

    def test_generated_relay_signing_key(self):
        config = ArbitrageConfig(_config_dict())
        # 32-byte hex key
        self.assertTrue(config.flashbots_relay_signing_key.startswith("0x"))
        self.assertEqual(len(config.flashbots_relay_signing_key), 66)

    def test_pair_protocol_default(self):
        config = ArbitrageConfig(_config_dict())
        self.assertEqual(config.pairs[0]["protocol"], "uniswap_v2")
        self.assertEqual(config.pairs[1]["protocol"], "uniswap_v2")
        self.assertEqual(config.pairs[0]["token0"], DAI)

    def test_flash_query_can_be_disabled(self):
        config = ArbitrageConfig(_config_dict(flash_query_address=None))
        self.assertIsNone(config.flash_query_address)


class TestArbitrageConfigValidation(unittest.TestCase):
    """Test validation errors."""

    def test_missing_required_fields(self):
        for field in ("rpc_url", "private_key", "bundle_executor_address", "pairs"):
            config_dict = _config_dict()
            del config_dict[field]
            with self.assertRaises(ConfigError) as ctx:
                ArbitrageConfig(config_dict)
            self.assertIn(field, str(ctx.exception))

    def test_config_error_is_configuration_error(self):
        self.assertTrue(issubclass(ConfigError, ConfigurationError))

    def test_miner_reward_range(self):
        for value in (0, 50, 100, "80"):
            ArbitrageConfig(_config_dict(miner_reward_percentage=value))
        for value in (-1, 101, "lots", True):
            with self.assertRaises(ConfigError):
                ArbitrageConfig(_config_dict(miner_reward_percentage=value))

    def test_invalid_address(self):
        with self.assertRaises(ConfigError):
            ArbitrageConfig(_config_dict(bundle_executor_address="0x1234"))

    def test_unquoted_hex_is_rejected(self):
        # YAML reads an unquoted 0x value as an integer
        with self.assertRaises(ConfigError):
            ArbitrageConfig(_config_dict(bundle_executor_address=0x1234))

    def test_pair_missing_fields(self):
        with self.assertRaises(ConfigError) as ctx:
            ArbitrageConfig(_config_dict(pairs=[{"address": "0x1111111111111111111111111111111111111111"}]))
        self.assertIn("token0", str(ctx.exception))

    def test_empty_pairs(self):
        with self.assertRaises(ConfigError):
            ArbitrageConfig(_config_dict(pairs=[]))

    def test_executors_mapping(self):
        config = ArbitrageConfig(_config_dict(executors={DAI: EXECUTOR}))
        self.assertEqual(config.executors, {DAI: Web3.to_checksum_address(EXECUTOR)})

        with self.assertRaises(ConfigError):
            ArbitrageConfig(_config_dict(executors=[EXECUTOR]))

    def test_poll_sec_positive(self):
        with self.assertRaises(ConfigError):
            ArbitrageConfig(_config_dict(poll_sec=0))


class TestEnvironmentOverrides(unittest.TestCase):
    """Environment variables take precedence over the file."""

    def test_overrides(self):
        env = {
            "ETHEREUM_RPC_URL": "http://node:8545",
            "MINER_REWARD_PERCENTAGE": "90",
            "PORT": "9000",
            "FLASHBOTS_RELAY_URL": "http://relay:18545",
        }
        config = ArbitrageConfig(_config_dict(), env=env)

        self.assertEqual(config.rpc_url, "http://node:8545")
        self.assertEqual(config.miner_reward_percentage, 90)
        self.assertEqual(config.port, 9000)
        self.assertEqual(config.relay_url, "http://relay:18545")

    def test_env_supplies_missing_secrets(self):
        config_dict = _config_dict()
        del config_dict["private_key"]
        config = ArbitrageConfig(config_dict, env={"PRIVATE_KEY": "0x" + "33" * 32})
        self.assertEqual(config.private_key, "0x" + "33" * 32)

    def test_empty_env_value_ignored(self):
        config = ArbitrageConfig(_config_dict(), env={"ETHEREUM_RPC_URL": ""})
        self.assertEqual(config.rpc_url, "http://127.0.0.1:8545")

    def test_invalid_env_percentage(self):
        with self.assertRaises(ConfigError):
            ArbitrageConfig(_config_dict(), env={"MINER_REWARD_PERCENTAGE": "250"})


class TestLoadConfig(unittest.TestCase):
    """Test YAML loading."""

    def _write(self, text):
        handle = tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False)
        handle.write(text)
        handle.close()
        self.addCleanup(os.unlink, handle.name)
        return handle.name

    def test_load_example_config(self):
        path = os.path.join(
            os.path.dirname(__file__), "..", "..", "configs", "arbitrage.example.yaml"
        )
        config = load_config(path, env={})

        self.assertEqual(config.miner_reward_percentage, 80)
        self.assertEqual(len(config.pairs), 4)

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config("/nonexistent/arbitrage.yaml", env={})

    def test_invalid_yaml(self):
        path = self._write("rpc_url: [unclosed\n")
        with self.assertRaises(ConfigError):
            load_config(path, env={})

    def test_non_mapping_yaml(self):
        path = self._write("- just\n- a list\n")
        with self.assertRaises(ConfigError):
            load_config(path, env={})


if __name__ == "__main__":
    unittest.main()
