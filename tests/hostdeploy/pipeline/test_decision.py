"""Frontend detection and the decision resolver."""

from __future__ import annotations

import json
from unittest.mock import Mock

import pytest

from hostdeploy.core.config import AppMode
from hostdeploy.pipeline.decision import decide, detect_frontend, resolve_frontend
from hostdeploy.pipeline.errors import AmbiguousState
from hostdeploy.pipeline.guards import all_of, evaluate_guard
from hostdeploy.pipeline.models import FrontendMode, RunContext


def _write_manifest(path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = data if isinstance(data, str) else json.dumps(data)
    path.write_text(text, encoding="utf-8")


# ---------------------------------------------------------------------------
# resolve_frontend
# ---------------------------------------------------------------------------


class TestResolveFrontend:
    @pytest.mark.parametrize("detected", [True, False])
    def test_frontend_enabled_is_always_true(self, detected):
        confirm = Mock(return_value=False)
        assert resolve_frontend(AppMode.FRONTEND_ENABLED, detected, confirm) is True
        confirm.assert_not_called()

    @pytest.mark.parametrize("detected", [True, False])
    def test_api_only_is_always_false(self, detected):
        confirm = Mock(return_value=True)
        assert resolve_frontend(AppMode.API_ONLY, detected, confirm) is False
        confirm.assert_not_called()

    def test_auto_without_frontend_never_confirms(self):
        confirm = Mock(return_value=True)
        assert resolve_frontend(AppMode.AUTO, False, confirm) is False
        confirm.assert_not_called()

    @pytest.mark.parametrize("answer", [True, False])
    def test_auto_with_frontend_returns_confirmation(self, answer):
        confirm = Mock(return_value=answer)
        assert resolve_frontend(AppMode.AUTO, True, confirm) is answer
        confirm.assert_called_once_with()


# ---------------------------------------------------------------------------
# detect_frontend
# ---------------------------------------------------------------------------


class TestDetectFrontend:
    def test_missing_manifest(self, tmp_path):
        assert detect_frontend(tmp_path / "client" / "package.json") is False

    @pytest.mark.parametrize(
        "section,name",
        [
            ("dependencies", "react"),
            ("devDependencies", "vite"),
            ("peerDependencies", "react-dom"),
            ("dependencies", "next"),
            ("devDependencies", "@vitejs/plugin-react"),
        ],
    )
    def test_marker_in_dependency_section(self, tmp_path, section, name):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, {"name": "web", section: {name: "*"}})
        assert detect_frontend(manifest) is True

    def test_manifest_without_markers(self, tmp_path):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, {"name": "api", "dependencies": {"express": "^4.0.0", "reactive-x": "1"}})
        assert detect_frontend(manifest) is False

    def test_marker_outside_dependency_sections_is_ignored(self, tmp_path):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, {"name": "api", "description": "react", "scripts": {"react": "x"}})
        assert detect_frontend(manifest) is False

    def test_invalid_json_falls_back_to_text_scan(self, tmp_path):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, '{"dependencies": {"react": "^18.0.0",}}')
        assert detect_frontend(manifest) is True

    def test_invalid_json_without_marker(self, tmp_path):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, '{"dependencies": {"express": "^4",}}')
        assert detect_frontend(manifest) is False

    def test_non_object_manifest(self, tmp_path):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, '["react"]')
        assert detect_frontend(manifest) is False

    def test_custom_markers(self, tmp_path):
        manifest = tmp_path / "package.json"
        _write_manifest(manifest, {"dependencies": {"svelte": "^4"}})
        assert detect_frontend(manifest, markers=["svelte"]) is True


# ---------------------------------------------------------------------------
# decide
# ---------------------------------------------------------------------------


class TestDecide:
    def test_reads_client_manifest(self, make_config):
        config = make_config()
        _write_manifest(config.frontend_path / "package.json", {"dependencies": {"react": "18"}})

        decision = decide(config, lambda: True)

        assert decision.frontend_detected is True
        assert decision.frontend_mode is FrontendMode.FRONTEND_ENABLED
        assert decision.mern_enabled

    def test_declined(self, make_config):
        config = make_config()
        _write_manifest(config.frontend_path / "package.json", {"dependencies": {"react": "18"}})

        decision = decide(config, lambda: False)

        assert decision.frontend_detected is True
        assert decision.frontend_mode is FrontendMode.API_ONLY

    def test_explicit_mode_without_working_copy(self, make_config):
        decision = decide(make_config(mode=AppMode.FRONTEND_ENABLED), Mock())
        assert decision.frontend_detected is False
        assert decision.mern_enabled


# ---------------------------------------------------------------------------
# Guard helpers
# ---------------------------------------------------------------------------


class TestGuardHelpers:
    def test_all_of_evaluates_every_check(self):
        checks = [Mock(return_value=False), Mock(return_value=True)]
        assert all_of(checks) is False
        for check in checks:
            check.assert_called_once()

    def test_all_of_empty_is_satisfied(self):
        assert all_of([]) is True

    def test_missing_guard_never_satisfied(self, make_config):
        assert evaluate_guard(None, RunContext(config=make_config())) == (False, "")

    def test_ambiguous_note(self, make_config):
        def guard(ctx):
            raise AmbiguousState("dpkg unavailable")

        satisfied, note = evaluate_guard(guard, RunContext(config=make_config()))
        assert satisfied is False
        assert "dpkg unavailable" in note
