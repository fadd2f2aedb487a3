"""Tests for DomainSslConfig: YAML loading, env substitution and validation."""

from __future__ import annotations

import pytest
import yaml
from conftest import INTERNAL_SECRET, TEST_KEY_B64, WEBHOOK_SECRET

from domainssl.config import ConfigValidationError, DomainSslConfig
from domainssl.config.settings import LETSENCRYPT_PRODUCTION, LETSENCRYPT_STAGING


def _errors(data):
    with pytest.raises(ConfigValidationError) as exc_info:
        DomainSslConfig(data=data)
    return exc_info.value.errors


class TestLoading:
    def test_from_file(self, tmp_config_file, tmp_path):
        config = DomainSslConfig(config_file=tmp_config_file)
        assert config.settings.database.path == str(tmp_path / "domainssl.db")
        assert config.get("acme.sandbox") is True
        assert config.get("acme.missing", "x") == "x"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="Cannot read"):
            DomainSslConfig(config_file=tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("acme: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="not valid YAML"):
            DomainSslConfig(config_file=path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text(yaml.safe_dump(["a", "b"]), encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="mapping"):
            DomainSslConfig(config_file=path)

    def test_exactly_one_source(self):
        with pytest.raises(ValueError, match="Exactly one"):
            DomainSslConfig()

    def test_data_is_not_mutated(self, config_data):
        config_data["acme"]["email"] = "${UNSET_EMAIL_VAR:-ops@example.com}"
        DomainSslConfig(data=config_data)
        assert config_data["acme"]["email"] == "${UNSET_EMAIL_VAR:-ops@example.com}"


class TestDefaults:
    def test_section_defaults(self, settings):
        assert (settings.server.bind, settings.server.port) == ("127.0.0.1", 8080)
        assert settings.renewal.threshold_days == 30  # noqa: PLR2004
        assert settings.renewal.max_attempts == 5  # noqa: PLR2004
        assert settings.renewal.backoff_base_hours == 6.0  # noqa: PLR2004
        assert settings.domains.max_per_project == 5  # noqa: PLR2004
        assert settings.webhook.signature_header == "X-Signature"
        assert settings.challenges.dns01.precheck is True
        assert settings.acme.rate_limit_per_week == 45  # noqa: PLR2004

    def test_key_is_wrapped(self, settings):
        assert settings.encryption.key.reveal() == TEST_KEY_B64
        assert TEST_KEY_B64 not in repr(settings.encryption)

    def test_integration_secrets_are_wrapped(self, config_data):
        config_data["webhook"] = {"url": "https://agent.test", "secret": WEBHOOK_SECRET}
        settings = DomainSslConfig(data=config_data).settings
        assert settings.webhook.secret.reveal() == WEBHOOK_SECRET
        assert settings.internal_api.secret.reveal() == INTERNAL_SECRET
        assert WEBHOOK_SECRET not in repr(settings.webhook)
        assert INTERNAL_SECRET not in repr(settings.internal_api)
        assert WEBHOOK_SECRET not in repr(settings)
        assert INTERNAL_SECRET not in repr(settings)

    def test_unset_secrets_are_falsy(self, config_data):
        del config_data["internal_api"]
        settings = DomainSslConfig(data=config_data).settings
        assert not settings.webhook.secret
        assert not settings.internal_api.secret

    @pytest.mark.parametrize(
        ("acme", "expected"),
        [
            ({"email": "a@b.c"}, LETSENCRYPT_PRODUCTION),
            ({"email": "a@b.c", "staging": True}, LETSENCRYPT_STAGING),
            ({"email": "a@b.c", "staging": True, "directory_url": "https://ca.test/dir"}, "https://ca.test/dir"),
        ],
    )
    def test_directory_selection(self, config_data, acme, expected):
        config_data["acme"] = acme
        assert DomainSslConfig(data=config_data).settings.acme.effective_directory_url == expected


class TestEnvironment:
    def test_variable_substitution(self, config_data, monkeypatch):
        monkeypatch.setenv("DOMAINSSL_TEST_SECRET", "s" * 20)
        config_data["internal_api"]["secret"] = "${DOMAINSSL_TEST_SECRET}"
        assert DomainSslConfig(data=config_data).settings.internal_api.secret.reveal() == "s" * 20

    def test_default_used_when_unset(self, config_data, monkeypatch):
        monkeypatch.delenv("DOMAINSSL_TEST_DB", raising=False)
        config_data["database"]["path"] = "${DOMAINSSL_TEST_DB:-/var/lib/domainssl.db}"
        assert DomainSslConfig(data=config_data).settings.database.path == "/var/lib/domainssl.db"

    def test_unset_without_default(self, config_data, monkeypatch):
        monkeypatch.delenv("DOMAINSSL_TEST_MISSING", raising=False)
        config_data["database"]["path"] = "${DOMAINSSL_TEST_MISSING}"
        errors = _errors(config_data)
        assert "database.path" in errors[0]

    def test_list_items_resolved(self, config_data, monkeypatch):
        monkeypatch.setenv("DOMAINSSL_TEST_NS", "1.1.1.1")
        config_data["ssrf"] = {"resolvers": ["${DOMAINSSL_TEST_NS}", "8.8.8.8"]}
        assert DomainSslConfig(data=config_data).settings.ssrf.resolvers == ("1.1.1.1", "8.8.8.8")


class TestValidation:
    def test_unknown_key(self, config_data):
        config_data["acme"]["colour"] = "blue"
        assert any("acme" in e and "colour" in e for e in _errors(config_data))

    def test_bad_type(self, config_data):
        config_data["server"] = {"port": 70000}
        assert any(e.startswith("server.port") for e in _errors(config_data))

    def test_key_required(self, config_data):
        del config_data["encryption"]
        assert any("encryption.key is required" in e for e in _errors(config_data))

    @pytest.mark.parametrize("key", ["not base64!", "c2hvcnQ="])
    def test_key_shape(self, config_data, key):
        config_data["encryption"]["key"] = key
        assert any(e.startswith("encryption.key") for e in _errors(config_data))

    def test_email_required_for_live_ca(self, config_data):
        config_data["acme"]["sandbox"] = False
        assert any("acme.email" in e for e in _errors(config_data))

    def test_webhook_url_and_secret_together(self, config_data):
        config_data["webhook"] = {"url": "https://agent.test"}
        assert any("set together" in e for e in _errors(config_data))

    def test_webhook_base_url(self, config_data):
        config_data["webhook"] = {"url": "https://agent.test/webhook", "secret": "x" * 20}
        assert any("'/webhook' is appended" in e for e in _errors(config_data))

    @pytest.mark.parametrize("section", ["webhook", "internal_api"])
    def test_short_secrets(self, config_data, section):
        config_data[section] = {"secret": "short"}
        if section == "webhook":
            config_data[section]["url"] = "https://agent.test"
        assert any(f"{section}.secret must be at least 16" in e for e in _errors(config_data))

    def test_errors_are_collected(self, config_data):
        config_data["encryption"]["key"] = ""
        config_data["acme"]["sandbox"] = False
        assert len(_errors(config_data)) == 2  # noqa: PLR2004
