"""Tests for session configuration and environment settings."""

import httpx
import pytest

from avi_session import AviSession, AviSettings, SessionConfig


class TestSessionConfig:

    def test_defaults(self):
        config = SessionConfig(host="10.10.1.5", username="admin")

        assert config.tenant == "admin"
        assert config.version == "17.1.2"
        assert config.timeout == 60.0
        assert config.insecure is False
        assert config.prefix == "https://10.10.1.5/"
        assert config.is_token_auth is False

    def test_blank_values_fall_back_to_defaults(self):
        config = SessionConfig(host="c", username="u", tenant="", version="", timeout=0)

        assert config.tenant == "admin"
        assert config.version == "17.1.2"
        assert config.timeout == 60.0

    @pytest.mark.parametrize(
        "options",
        [{"auth_token": "tok"}, {"refresh_auth_token": lambda: "tok"}],
    )
    def test_token_auth_detection(self, options):
        assert SessionConfig(host="c", username="u", password="pw", **options).is_token_auth

    def test_with_helpers_copy(self):
        config = SessionConfig(host="c", username="u")

        scoped = config.with_tenant("blue").with_version("20.1.1")

        assert (scoped.tenant, scoped.version) == ("blue", "20.1.1")
        assert (config.tenant, config.version) == ("admin", "17.1.2")

    def test_session_builds_client_from_config(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        session = AviSession(SessionConfig(host="c", username="u", timeout=5, transport=transport))

        client = session.client

        assert client.timeout.read == 5
        assert client.timeout.connect == 5
        assert client.timeout.write == 5
        assert client.timeout.pool == 5
        assert client.follow_redirects is False
        assert session.client is client
        session.close()
        assert session._client is None

    def test_injected_client_is_not_closed(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        with AviSession(SessionConfig(host="c", username="u"), client=client) as session:
            assert session.client is client

        assert not client.is_closed
        client.close()


class TestAviSettings:

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("AVI_CONTROLLER", "avi.example.com")
        monkeypatch.setenv("AVI_USERNAME", "automation")
        monkeypatch.setenv("AVI_PASSWORD", "s3cret")
        monkeypatch.setenv("AVI_TENANT", "blue")
        monkeypatch.setenv("AVI_INSECURE", "true")
        monkeypatch.setenv("AVI_TIMEOUT", "30")

        settings = AviSettings(_env_file=None)

        assert "s3cret" not in repr(settings)
        config = settings.to_session_config()
        assert config.host == "avi.example.com"
        assert config.username == "automation"
        assert config.password == "s3cret"
        assert config.auth_token == ""
        assert config.tenant == "blue"
        assert config.insecure is True
        assert config.timeout == 30.0

    def test_overrides(self, monkeypatch):
        monkeypatch.delenv("AVI_AUTH_TOKEN", raising=False)
        settings = AviSettings(_env_file=None, controller="c", auth_token="tok")

        config = settings.to_session_config(version="21.1.1")

        assert config.auth_token == "tok"
        assert config.is_token_auth
        assert config.version == "21.1.1"
