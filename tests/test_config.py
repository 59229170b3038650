"""
Unit tests for client configuration
"""

import json

import pytest

from keygen_sdk.config import (
    ClientConfig,
    ClientConfigBuilder,
    load_client_config,
    DEFAULT_API_URL,
)
from keygen_sdk.exceptions import ConfigError, ErrorCodes, ParseError
from keygen_sdk.verification import FreshnessPolicy


class TestClientConfig:
    """Test cases for ClientConfig validation"""

    def test_defaults(self, verify_key):
        config = ClientConfig(verify_key=verify_key, account_id="acme")

        assert config.api_url == DEFAULT_API_URL
        assert config.api_version == "v1"
        assert config.max_clock_drift_minutes == 5
        assert config.cache_lifetime_minutes == 240
        assert not config.is_custom_domain

    @pytest.mark.parametrize("account_id, custom_domain", [(None, None), ("acme", "licensing.example.com")])
    def test_exactly_one_scope(self, verify_key, account_id, custom_domain):
        with pytest.raises(ConfigError):
            ClientConfig(verify_key=verify_key, account_id=account_id, custom_domain=custom_domain)

    def test_invalid_verify_key(self):
        with pytest.raises(ConfigError) as exc_info:
            ClientConfig(verify_key="abcd", account_id="acme")
        assert exc_info.value.error_code == ErrorCodes.INVALID_PUBLIC_KEY
        assert isinstance(exc_info.value, ParseError)

    @pytest.mark.parametrize("minutes, expected", [(10, 60), (300, 300), (5000, 1440)])
    def test_cache_lifetime_is_clamped(self, verify_key, minutes, expected):
        config = ClientConfig(verify_key=verify_key, account_id="acme", cache_lifetime_minutes=minutes)

        assert config.cache_lifetime_minutes == expected

    def test_invalid_api_url(self, verify_key):
        with pytest.raises(ConfigError):
            ClientConfig(verify_key=verify_key, account_id="acme", api_url="api.keygen.sh")

    def test_invalid_custom_domain(self, verify_key):
        with pytest.raises(ConfigError):
            ClientConfig(verify_key=verify_key, custom_domain="https://licensing.example.com/")

    def test_invalid_timeout(self, verify_key):
        with pytest.raises(ConfigError):
            ClientConfig(verify_key=verify_key, account_id="acme", timeout=0)

    @pytest.mark.parametrize("field_name, value", [
        ("max_clock_drift_minutes", "5"),
        ("max_clock_drift_minutes", 5.0),
        ("max_clock_drift_minutes", True),
        ("cache_lifetime_minutes", "abc"),
        ("cache_lifetime_minutes", None),
        ("timeout", "30"),
    ])
    def test_non_numeric_fields(self, verify_key, field_name, value):
        with pytest.raises(ConfigError):
            ClientConfig(verify_key=verify_key, account_id="acme", **{field_name: value})

    def test_freshness_policy(self, verify_key):
        config = ClientConfig(verify_key=verify_key, account_id="acme", max_clock_drift_minutes=-1)

        assert config.freshness_policy == FreshnessPolicy(max_clock_drift_minutes=-1, cache_lifetime_minutes=240)

    def test_rebuild_revalidates(self, verify_key):
        config = ClientConfig(verify_key=verify_key, account_id="acme")

        assert config.rebuild(account_id="other").account_id == "other"
        assert config.account_id == "acme"
        with pytest.raises(ConfigError):
            config.rebuild(custom_domain="licensing.example.com")

    def test_frozen(self, verify_key):
        config = ClientConfig(verify_key=verify_key, account_id="acme")

        with pytest.raises(AttributeError):
            config.account_id = "other"


class TestClientConfigDict:
    """Test cases for dictionary and file loading"""

    def test_round_trip(self, verify_key):
        config = ClientConfig(verify_key=verify_key, custom_domain="licensing.example.com", version_header="1.3")

        assert ClientConfig.from_dict(config.to_dict()) == config

    def test_unknown_field(self, verify_key):
        with pytest.raises(ConfigError, match="Unknown configuration fields: colour"):
            ClientConfig.from_dict({"verify_key": verify_key, "account_id": "acme", "colour": "blue"})

    def test_missing_verify_key(self):
        with pytest.raises(ConfigError, match="verify_key"):
            ClientConfig.from_dict({"account_id": "acme"})

    def test_not_an_object(self):
        with pytest.raises(ConfigError):
            ClientConfig.from_dict(["verify_key"])

    def test_load_file(self, tmp_path, verify_key):
        path = tmp_path / "keygen.json"
        path.write_text(json.dumps({"verify_key": verify_key, "account_id": "acme", "cache_lifetime_minutes": 480}))

        config = load_client_config(path)

        assert config.account_id == "acme"
        assert config.cache_lifetime_minutes == 480

    @pytest.mark.parametrize("field_name, value", [
        ("max_clock_drift_minutes", "5"),
        ("cache_lifetime_minutes", "abc"),
    ])
    def test_load_file_with_string_minutes(self, tmp_path, verify_key, field_name, value):
        path = tmp_path / "keygen.json"
        path.write_text(json.dumps({"verify_key": verify_key, "account_id": "acme", field_name: value}))

        with pytest.raises(ConfigError, match=field_name):
            load_client_config(path)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_client_config(tmp_path / "missing.json")
        assert exc_info.value.error_code == "FILE_ERROR"

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "keygen.json"
        path.write_text("{not json")

        with pytest.raises(ConfigError) as exc_info:
            load_client_config(path)
        assert exc_info.value.error_code == "PARSE_ERROR"


class TestClientConfigBuilder:
    """Test cases for the fluent builder"""

    def test_account_builder(self, verify_key):
        config = (ClientConfigBuilder.for_account("acme", verify_key)
                  .api_url("https://keygen.internal.example.com")
                  .api_version("v2")
                  .version_header("1.3")
                  .max_clock_drift(10)
                  .cache_lifetime(30)
                  .user_agent("MyApp/2.0")
                  .timeout(5)
                  .build())

        assert config.api_url == "https://keygen.internal.example.com"
        assert config.api_version == "v2"
        assert config.version_header == "1.3"
        assert config.max_clock_drift_minutes == 10
        assert config.cache_lifetime_minutes == 60
        assert config.user_agent == "MyApp/2.0"
        assert config.timeout == 5

    def test_custom_domain_ignores_api_url(self, verify_key):
        config = (ClientConfigBuilder.for_custom_domain("licensing.example.com", verify_key)
                  .api_url("https://elsewhere.example.com")
                  .build())

        assert config.custom_domain == "licensing.example.com"
        assert config.api_url == DEFAULT_API_URL

    def test_invalid_build(self):
        with pytest.raises(ConfigError):
            ClientConfigBuilder.for_account("acme", "not-a-key").build()
