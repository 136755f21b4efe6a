"""
Tests for settings loading and validation.
"""

import pytest

from bridge_voter.config import Settings, VoterConfig, split_csv
from bridge_voter.errors import ConfigurationError


def _valid_settings(**overrides) -> Settings:
    values = dict(
        side_chain_id=7,
        source_event_type="A.01.CrossChain.CrossChainEvent",
        relay_private_key="11" * 32,
    )
    values.update(overrides)
    return Settings(**values)


def test_split_csv_drops_blanks():
    assert split_csv(" http://a , ,http://b,") == ["http://a", "http://b"]


def test_from_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("SIDE_CHAIN_ID", raising=False)
    env = tmp_path / "voter.env"
    env.write_text(
        "SOURCE_RPC_URLS=http://flow-a:8888,http://flow-b:8888\n"
        "SIDE_CHAIN_ID=7\n"
        "METHOD_WHITELIST=unlock,mint\n"
        "RELAY_CONFIRMATIONS=2\n"
        "FORCE_SOURCE_HEIGHT=500\n"
    )

    config = VoterConfig.from_env(env)

    assert config.source_urls == ["http://flow-a:8888", "http://flow-b:8888"]
    source = config.source_monitor()
    assert source.side_chain_id == 7
    assert source.method_whitelist == frozenset({"unlock", "mint"})
    assert source.force_height == 500
    assert source.confirmations == 3
    assert config.relay_monitor().confirmations == 2


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("VERIFY_STATE_ROOT", "false")
    monkeypatch.setenv("RETRY_BACKOFF_SECONDS", "0.25")

    relay = VoterConfig(settings=Settings()).relay_monitor()

    assert relay.verify_state_root is False
    assert relay.retry_backoff == 0.25


def test_whitelist_membership():
    source = VoterConfig(settings=_valid_settings(method_whitelist="unlock")).source_monitor()
    assert source.is_whitelisted("unlock")
    assert not source.is_whitelisted("mint")


def test_valid_configuration_passes():
    VoterConfig(settings=_valid_settings()).validate_for_run()


def test_keystore_satisfies_key_requirement():
    settings = _valid_settings(relay_private_key="", keystore_path="/keys/relay.json")
    VoterConfig(settings=settings).validate_for_run()


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"source_rpc_urls": " , "}, "SOURCE_RPC_URLS"),
        ({"relay_rpc_urls": ""}, "RELAY_RPC_URLS"),
        ({"side_chain_id": 0}, "SIDE_CHAIN_ID"),
        ({"source_event_type": ""}, "SOURCE_EVENT_TYPE"),
        ({"relay_confirmations": 0}, "RELAY_CONFIRMATIONS"),
        ({"relay_private_key": ""}, "RELAY_PRIVATE_KEY"),
    ],
)
def test_invalid_configuration(overrides, message):
    with pytest.raises(ConfigurationError, match=message):
        VoterConfig(settings=_valid_settings(**overrides)).validate_for_run()
