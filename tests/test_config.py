"""
Tests for environment and YAML configuration loading.
"""

import pytest

from claimdesk.config import DEFAULT_ACCESS_COOKIE, UpstreamConfig, load_config
from claimdesk.errors import ConfigError


class TestUpstreamConfig:
    def test_missing_base_url_is_config_error(self):
        with pytest.raises(ConfigError):
            UpstreamConfig(base_url="")

    def test_trailing_slash_is_stripped(self):
        assert UpstreamConfig(base_url="https://d.example.com/").base_url == "https://d.example.com"

    def test_secure_cookies_follow_upstream_scheme(self):
        assert UpstreamConfig(base_url="https://d.example.com").secure_cookies
        assert not UpstreamConfig(base_url="http://localhost:8055").secure_cookies
        assert not UpstreamConfig(base_url="http://127.0.0.1:8055").secure_cookies

    def test_explicit_secure_setting_wins(self):
        assert UpstreamConfig(base_url="http://localhost:8055", cookie_secure=True).secure_cookies

    def test_tokens_not_in_repr(self):
        config = UpstreamConfig(base_url="https://d.example.com", static_fallback_token="svc-secret")
        assert "svc-secret" not in repr(config)


class TestLoadConfig:
    def test_requires_base_url(self):
        with pytest.raises(ConfigError):
            load_config()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DIRECTUS_URL", "https://d.example.com")
        monkeypatch.setenv("DIRECTUS_TOKEN", "svc")
        monkeypatch.setenv("COOKIE_SECURE", "false")
        monkeypatch.setenv("CLAIMDESK_REQUEST_TIMEOUT", "4.5")

        config = load_config()

        assert config.base_url == "https://d.example.com"
        assert config.static_fallback_token == "svc"
        assert config.cookie_secure is False
        assert config.request_timeout == 4.5
        assert config.access_cookie == DEFAULT_ACCESS_COOKIE

    def test_public_url_fallback(self, monkeypatch):
        monkeypatch.setenv("NEXT_PUBLIC_DIRECTUS_URL", "https://public.example.com")
        assert load_config().base_url == "https://public.example.com"

    def test_static_token_precedence(self, monkeypatch):
        monkeypatch.setenv("DIRECTUS_URL", "https://d.example.com")
        monkeypatch.setenv("DIRECTUS_ADMIN_TOKEN", "admin")
        monkeypatch.setenv("DIRECTUS_STATIC_TOKEN", "static")
        assert load_config().static_fallback_token == "static"

    def test_service_account_needs_both_values(self, monkeypatch):
        monkeypatch.setenv("DIRECTUS_URL", "https://d.example.com")
        monkeypatch.setenv("DIRECTUS_SERVICE_EMAIL", "svc@example.com")
        assert load_config().service_account_credentials is None

        monkeypatch.setenv("DIRECTUS_SERVICE_PASSWORD", "pw")
        account = load_config().service_account_credentials
        assert account.email == "svc@example.com"
        assert "pw" not in repr(account)

    def test_yaml_overlay(self, monkeypatch, tmp_path):
        overlay = tmp_path / "claimdesk.yaml"
        overlay.write_text(
            "upstream:\n"
            "  base_url: https://yaml.example.com\n"
            "  aggregation_timeout: 12\n"
            "  service_account:\n"
            "    email: svc@example.com\n"
            "    password: pw\n"
            "cookies:\n"
            "  access_name: session\n"
            "  domain: .example.com\n"
        )
        monkeypatch.setenv("CLAIMDESK_CONFIG", str(overlay))

        config = load_config()

        assert config.base_url == "https://yaml.example.com"
        assert config.aggregation_timeout == 12
        assert config.service_account_credentials.email == "svc@example.com"
        assert config.access_cookie == "session"
        assert config.cookie_domain == ".example.com"

    def test_missing_overlay_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DIRECTUS_URL", "https://d.example.com")
        monkeypatch.setenv("CLAIMDESK_CONFIG", str(tmp_path / "nope.yaml"))
        with pytest.raises(ConfigError, match="not found"):
            load_config()

    def test_overlay_must_be_mapping(self, monkeypatch, tmp_path):
        overlay = tmp_path / "list.yaml"
        overlay.write_text("- one\n- two\n")
        monkeypatch.setenv("DIRECTUS_URL", "https://d.example.com")
        monkeypatch.setenv("CLAIMDESK_CONFIG", str(overlay))
        with pytest.raises(ConfigError, match="mapping"):
            load_config()
