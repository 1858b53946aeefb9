"""Command-line entry point and configuration gathering."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from hostdeploy import app
from hostdeploy.cli.prompts import MODE_OPTIONS, gather_config
from hostdeploy.core.config import AppMode, ConfigError
from hostdeploy.pipeline.errors import CollaboratorFailure

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    monkeypatch.setenv("HOSTDEPLOY_CONFIG", str(tmp_path / "no-default.yaml"))
    monkeypatch.setattr("hostdeploy._configure_logging", lambda verbose: None)


@pytest.fixture
def answers_file(tmp_path):
    def _write(extra: str = "") -> Path:
        path = tmp_path / "deploy.yaml"
        path.write_text(
            "repo_url: git@github.com:acme/shop.git\n"
            f"app_dir: {tmp_path / 'app'}\n"
            "app_name: shop\n"
            "use_ssh_key: n\n"
            f"ssh_key_path: {tmp_path / 'keys' / 'deploy_key_shop'}\n"
            "ssh_key_comment: shop@test-host\n" + extra,
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def fake_host(monkeypatch, host):
    monkeypatch.setattr("hostdeploy.default_collaborators", host.collaborators)
    return host


# ---------------------------------------------------------------------------
# deploy command
# ---------------------------------------------------------------------------


class TestDeployCommand:
    def test_steps_lists_and_exits(self, fake_host):
        result = runner.invoke(app, ["--steps"])

        assert result.exit_code == 0
        assert "environment" in result.output
        assert "supervisor" in result.output
        assert fake_host.log == []

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("hostdeploy ")

    def test_from_out_of_range(self):
        result = runner.invoke(app, ["--from", "11"])
        assert result.exit_code == 2

    def test_unattended_run(self, fake_host, answers_file):
        result = runner.invoke(app, ["--config", str(answers_file()), "--non-interactive"])

        assert result.exit_code == 0, result.output
        assert "Deployment complete." in result.output
        assert "pm2 logs shop" in result.output
        assert fake_host.calls("supervisor.start")

    def test_unknown_argument_warns_and_continues(self, fake_host, answers_file):
        result = runner.invoke(
            app, ["--config", str(answers_file()), "--non-interactive", "--fast"]
        )

        assert result.exit_code == 0, result.output
        assert "ignoring unrecognised argument '--fast'" in result.output

    def test_failure_prints_resume_command(self, fake_host, answers_file):
        fake_host.fail(
            "dependencies.ensure", CollaboratorFailure("npm", "npm install", 1, "npm ERR! ETIMEDOUT")
        )

        result = runner.invoke(app, ["--config", str(answers_file()), "--non-interactive"])

        assert result.exit_code == 1
        assert "Deployment failed" in result.output
        assert "hostdeploy --from 7" in result.output
        assert "Deployment complete." not in result.output

    def test_resume_skips_earlier_steps(self, fake_host, answers_file, tmp_path):
        (tmp_path / "app" / "server").mkdir(parents=True)
        result = runner.invoke(
            app, ["--config", str(answers_file()), "--non-interactive", "--from", "10"]
        )

        assert result.exit_code == 0, result.output
        assert "Resuming from step 10" in result.output
        assert fake_host.calls("packages.") == []
        assert fake_host.calls("supervisor.start")

    def test_invalid_answers_file(self, fake_host, answers_file):
        result = runner.invoke(
            app, ["--config", str(answers_file("server_port: http\n")), "--non-interactive"]
        )

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert fake_host.log == []

    def test_missing_answers_file(self, fake_host, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "absent.yaml"), "--non-interactive"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_save_config(self, fake_host, answers_file, tmp_path):
        saved = tmp_path / "out" / "saved.yaml"
        result = runner.invoke(
            app,
            ["--config", str(answers_file()), "--non-interactive", "--save-config", str(saved), "--steps"],
        )

        # --steps exits before anything is gathered
        assert result.exit_code == 0
        assert not saved.exists()

        result = runner.invoke(
            app, ["--config", str(answers_file()), "--non-interactive", "--save-config", str(saved)]
        )
        assert result.exit_code == 0, result.output
        assert "app_name: shop" in saved.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# gather_config
# ---------------------------------------------------------------------------


class _Prompts:
    """Stand-in for typer.prompt / typer.confirm keyed by label prefix."""

    def __init__(self, replies: dict[str, object] | None = None):
        self.replies = replies or {}
        self.asked: list[str] = []

    def _reply(self, label: str, default):
        self.asked.append(label)
        for prefix, reply in self.replies.items():
            if label.startswith(prefix):
                return reply
        return default

    def prompt(self, label, default=None, **kwargs):
        return self._reply(label, default)

    def confirm(self, label, default=False, **kwargs):
        return self._reply(label, default)


@pytest.fixture
def prompts(monkeypatch):
    def _install(replies=None) -> _Prompts:
        fake = _Prompts(replies)
        monkeypatch.setattr("hostdeploy.cli.prompts.typer.prompt", fake.prompt)
        monkeypatch.setattr("hostdeploy.cli.prompts.typer.confirm", fake.confirm)
        return fake

    return _install


def _select(choice: str):
    def _pick(options, title, default_key=None, console=None):
        assert set(options) == set(MODE_OPTIONS)
        return choice

    return _pick


class TestGatherConfig:
    def test_unattended_uses_preset(self, console):
        config = gather_config({"app_name": "shop", "mode": "api"}, interactive=False, console=console)
        assert config.app_name == "shop"
        assert config.mode is AppMode.API_ONLY

    def test_unattended_without_repo_warns(self, console, caplog):
        config = gather_config({}, interactive=False, console=console)
        assert config.repo_url == ""
        assert "No repo_url configured" in caplog.text

    def test_unattended_invalid_value(self, console):
        with pytest.raises(ConfigError):
            gather_config({"enable_proxy": "perhaps"}, interactive=False, console=console)

    def test_interactive_accepts_defaults(self, prompts, console, tmp_path):
        fake = prompts({"Repository URL": "git@github.com:acme/shop.git", "PM2/nginx app name": "shop"})
        config = gather_config(
            {"app_dir": str(tmp_path / "app")},
            interactive=True,
            console=console,
            select_mode=_select("mern"),
        )

        assert config.mode is AppMode.FRONTEND_ENABLED
        assert config.repo_url == "git@github.com:acme/shop.git"
        assert config.app_dir == tmp_path / "app"
        assert config.ssh_key_path == Path.home() / ".ssh" / "deploy_key_shop"
        assert config.ssh_key_comment.startswith("shop@")
        assert any(label.startswith("nginx server_name") for label in fake.asked)

    def test_ssh_prompts_skipped_without_key(self, prompts, console):
        fake = prompts(
            {
                "Repository URL": "https://github.com/acme/shop.git",
                "Use an SSH deploy key": False,
            }
        )
        config = gather_config({}, interactive=True, console=console, select_mode=_select("auto"))

        assert config.use_ssh_key is False
        assert config.repo_url == "https://github.com/acme/shop.git"
        assert not any(label.startswith("SSH key path") for label in fake.asked)

    def test_https_url_switched_to_ssh(self, prompts, console):
        prompts(
            {
                "Repository URL": "https://github.com/acme/shop.git",
                "SSH repository URL": "git@github.com:acme/shop.git",
            }
        )
        config = gather_config({}, interactive=True, console=console, select_mode=_select("auto"))

        assert config.repo_url == "git@github.com:acme/shop.git"
        assert "HTTPS" in console.file.getvalue()

    def test_port_and_start_method(self, prompts, console):
        prompts(
            {
                "Repository URL": "git@github.com:acme/shop.git",
                "Backend internal port": 8080,
                "Backend start method": "npm",
            }
        )
        config = gather_config({}, interactive=True, console=console, select_mode=_select("api"))

        assert config.server_port == 8080
        assert config.start_method.value == "npm"

    def test_pinned_key_path_kept(self, prompts, console, tmp_path):
        prompts({"Repository URL": "git@github.com:acme/shop.git", "PM2/nginx app name": "other"})
        config = gather_config(
            {"ssh_key_path": str(tmp_path / "pinned")},
            interactive=True,
            console=console,
            select_mode=_select("auto"),
        )
        assert config.ssh_key_path == tmp_path / "pinned"
