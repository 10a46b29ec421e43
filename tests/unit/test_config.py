"""
Unit tests for configuration loading and validation.
"""

import pytest

from gopkgredir.config import Config, parse_address, parse_bool


class TestParseAddress:
    """Tests for parse_address()."""

    def test_ipv4(self):
        assert parse_address("127.0.0.1:8080") == ("127.0.0.1", 8080)

    def test_bracketed_ipv6(self):
        assert parse_address("[::1]:443") == ("::1", 443)

    def test_all_interfaces(self):
        assert parse_address(":80") == ("", 80)

    def test_hostname(self):
        assert parse_address("localhost:0") == ("localhost", 0)

    @pytest.mark.parametrize("address", [
        "127.0.0.1",
        "::1:80",
        "[::1]",
        "[::1]80",
        "host:",
        "host:70000",
        "host:no-such-service-name",
    ])
    def test_invalid(self, address):
        """Test that malformed addresses raise ValueError."""
        with pytest.raises(ValueError):
            parse_address(address)


class TestParseBool:
    """Tests for parse_bool()."""

    @pytest.mark.parametrize("value", ["1", "t", "T", "TRUE", "true", "True"])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "f", "F", "FALSE", "false", "False"])
    def test_false(self, value):
        assert parse_bool(value) is False

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_bool("yes please")


class TestConfigFromEnv:
    """Tests for Config.from_env()."""

    def test_defaults(self):
        """Test defaults with an empty environment."""
        config = Config.from_env({})

        assert config.vcs == "git"
        assert config.listen_address == "[::1]:80"
        assert config.tls_listen_address == "[::1]:443"
        assert config.cache_file == "letsencrypt.cache"
        assert config.tls is True
        assert config.redirect_url == ""
        assert config.log_level == "INFO"

    def test_all_variables(self):
        """Test that every variable is read."""
        config = Config.from_env({
            "IMPORT_PREFIX": "example.com",
            "VCS": "hg",
            "REPO_ROOT": "https://github.com/me",
            "REDIRECT_URL": "https://example.com/docs",
            "TLS_LISTEN_ADDRESS": ":8443",
            "LISTEN_ADDRESS": ":8080",
            "LETSENCRYPT_CACHE_FILE": "/var/lib/cache.json",
            "LETSENCRYPT_EMAIL": "admin@example.com",
            "PUBLIC_TLS_ADDRESS": "example.com",
            "NO_TLS": "true",
            "LOG_LEVEL": "DEBUG",
        })

        assert config.import_prefix == "example.com"
        assert config.vcs == "hg"
        assert config.repo_root == "https://github.com/me"
        assert config.redirect_url == "https://example.com/docs"
        assert config.tls_listen_address == ":8443"
        assert config.listen_address == ":8080"
        assert config.cache_file == "/var/lib/cache.json"
        assert config.email == "admin@example.com"
        assert config.public_tls_address == "example.com"
        assert config.tls is False
        assert config.log_level == "DEBUG"

    def test_no_tls_false(self):
        assert Config.from_env({"NO_TLS": "0"}).tls is True

    def test_no_tls_invalid(self):
        with pytest.raises(ValueError):
            Config.from_env({"NO_TLS": "maybe"})

    def test_frozen(self):
        """Test that configuration cannot change after construction."""
        config = Config()
        with pytest.raises(AttributeError):
            config.vcs = "svn"


class TestConfigValidate:
    """Tests for Config.validate()."""

    def test_valid_defaults(self):
        Config().validate()

    def test_invalid_listen_address(self):
        with pytest.raises(ValueError):
            Config(listen_address="nowhere").validate()

    def test_tls_address_checked_only_with_tls(self):
        """Test that the TLS address is ignored in plain mode."""
        Config(tls=False, tls_listen_address="nowhere").validate()

        with pytest.raises(ValueError):
            Config(tls=True, tls_listen_address="nowhere").validate()

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            Config(log_level="LOUD").validate()

    def test_invalid_access_log_format(self):
        with pytest.raises(ValueError):
            Config(access_log_format="xml").validate()

    def test_invalid_buffer_size(self):
        with pytest.raises(ValueError):
            Config(buffer_size=100).validate()

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            Config(timeout=0).validate()
