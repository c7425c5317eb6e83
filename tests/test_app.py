"""End-to-end CLI tests through Typer's CliRunner."""

from __future__ import annotations

import json
import time

import pytest

from cloudctl import __version__
from cloudctl.app import app, main
from cloudctl.exceptions import DiscoveryError


@pytest.fixture
def invoke(cli_runner, settings):
    """Run the CLI against the test config dir with plain output."""

    def run(*args: str, obj: dict | None = None):
        return cli_runner.invoke(
            app,
            ["--config-dir", str(settings.config_dir), "--no-color", *args],
            obj=obj if obj is not None else {},
        )

    return run


class TestGlobalOptions:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"cloudctl {__version__}" in result.output

    def test_help_lists_commands(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "auth" in result.output
        assert "me" in result.output

    def test_bad_timeout_env(self, invoke, monkeypatch) -> None:
        monkeypatch.setenv("CLOUDCTL_TIMEOUT", "never")
        result = invoke("me")
        assert result.exit_code == 1
        assert "CLOUDCTL_TIMEOUT" in result.output


class TestMe:
    def test_with_api_key(self, invoke, api, api_client_factory, issuer) -> None:
        result = invoke(
            "--api-key", "key-123", "--json", "me",
            obj={"api_client_factory": api_client_factory},
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"id": "u1", "email": "dev@example.com"}
        assert api.bearer_tokens == ["key-123"]
        assert issuer.requests == []

    def test_api_key_from_env(self, invoke, api, api_client_factory, monkeypatch) -> None:
        monkeypatch.setenv("CLOUDCTL_API_KEY", "env-key")
        result = invoke("--json", "me", obj={"api_client_factory": api_client_factory})
        assert result.exit_code == 0, result.output
        assert api.bearer_tokens == ["env-key"]

    def test_with_cached_credential(
        self, invoke, api, api_client_factory, write_credentials, issuer
    ) -> None:
        write_credentials(access_token="cached", expires_at=int(time.time()) + 600, user_id="u1")

        result = invoke("--json", "me", obj={"api_client_factory": api_client_factory})

        assert result.exit_code == 0, result.output
        assert api.bearer_tokens == ["cached"]
        assert issuer.requests == []

    def test_unattended_without_credential(self, invoke, api_client_factory) -> None:
        # CliRunner's stdin is not a terminal.
        result = invoke("me", obj={"api_client_factory": api_client_factory})
        assert result.exit_code == 8
        assert "Error: Cannot run interactive auth" in result.output
        assert "CLOUDCTL_API_KEY" in result.output

    def test_unreadable_credentials(self, invoke, settings, api_client_factory) -> None:
        (settings.config_dir / "credentials.json").mkdir()
        result = invoke("me", obj={"api_client_factory": api_client_factory})
        assert result.exit_code == 9
        assert "Cannot read credentials file" in result.output

    def test_rejected_api_key(self, invoke, api, api_client_factory) -> None:
        api.status = 401
        result = invoke("--api-key", "bad", "me", obj={"api_client_factory": api_client_factory})
        assert result.exit_code == 3

    def test_logs_in_when_needed(
        self, invoke, make_manager, api, api_client_factory, browser
    ) -> None:
        obj = {"manager": make_manager(), "api_client_factory": api_client_factory}
        result = invoke("--json", "me", obj=obj)
        assert result.exit_code == 0, result.output
        assert len(browser.opened) == 1
        assert "Auth complete" in result.output


class TestAuth:
    @pytest.mark.parametrize("command", ["auth", "login"])
    def test_login_saves_credentials(self, invoke, make_manager, settings, browser, command) -> None:
        result = invoke(command, obj={"manager": make_manager()})

        assert result.exit_code == 0, result.output
        assert "Auth complete" in result.output
        assert "cloudctl me" in result.output
        stored = json.loads((settings.config_dir / "credentials.json").read_text())
        assert stored["user_id"] == "u1"

    def test_ignores_api_key(self, invoke, make_manager, browser) -> None:
        result = invoke("--api-key", "k", "auth", obj={"manager": make_manager()})
        assert result.exit_code == 0, result.output
        assert len(browser.opened) == 1

    def test_unattended_refused(self, invoke, make_manager, browser) -> None:
        result = invoke("auth", obj={"manager": make_manager(unattended=lambda: True)})
        assert result.exit_code == 8
        assert browser.opened == []

    def test_force_auth(self, invoke, make_manager, browser) -> None:
        result = invoke(
            "--force-auth", "auth", obj={"manager": make_manager(unattended=lambda: True)}
        )
        assert result.exit_code == 0, result.output
        assert len(browser.opened) == 1

    def test_login_error_exit_code(self, invoke, make_manager, issuer) -> None:
        issuer.discovery_status = 502
        result = invoke("auth", obj={"manager": make_manager()})
        assert result.exit_code == DiscoveryError.exit_code
        assert "OIDC discovery failed" in result.output


class TestMain:
    @pytest.fixture(autouse=True)
    def _no_signal_handlers(self, monkeypatch) -> None:
        monkeypatch.setattr("cloudctl.app._setup_signal_handlers", lambda: None)

    def test_cloudctl_error_exit_code(self, monkeypatch, capsys) -> None:
        def boom() -> None:
            raise DiscoveryError("issuer down")

        monkeypatch.setattr("cloudctl.app.app", boom)
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 3
        assert "issuer down" in capsys.readouterr().err

    def test_crash_log(self, monkeypatch, tmp_path, capsys) -> None:
        def boom() -> None:
            raise RuntimeError("unexpected")

        monkeypatch.setattr("cloudctl.app.app", boom)
        monkeypatch.setattr("cloudctl.config.get_config_dir", lambda: tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        logs = list((tmp_path / "logs").iterdir())
        assert len(logs) == 1
        assert "RuntimeError: unexpected" in logs[0].read_text()
        assert "Debug log" in capsys.readouterr().err
