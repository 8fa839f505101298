"""
Tests for mirror settings, the YAML loader and the policy source.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from loginmirror.config.loader import CONFIG_ENV_VAR, load_settings
from loginmirror.errors import ConfigurationError
from loginmirror.mirror.config import MirrorSettings, env_overrides, parse_bool
from loginmirror.policy.source import PolicySource, StaticPolicy


class TestMirrorSettings:
    """Tests for MirrorSettings parsing."""

    def test_defaults(self):
        settings = MirrorSettings.from_env({})

        assert settings.enabled is False
        assert settings.preskip_incompatible is False
        assert settings.diff_on_noop is False
        assert settings.blocking is False
        assert settings.failure_log_size == 100
        assert settings.state_file is None

    def test_from_env(self):
        settings = MirrorSettings.from_env({
            "LOGIN_MIRROR_ENABLED": "true",
            "LOGIN_MIRROR_PRESKIP_INCOMPATIBLE": "1",
            "LOGIN_MIRROR_DIFF_ON_NOOP": "yes",
            "LOGIN_MIRROR_FAILURE_LOG_SIZE": "25",
            "LOGIN_MIRROR_STATE_FILE": "state/custom.json",
            "UNRELATED": "x",
        })

        assert settings.enabled is True
        assert settings.preskip_incompatible is True
        assert settings.diff_on_noop is True
        assert settings.failure_log_size == 25
        assert settings.state_file == Path("state/custom.json")

    @pytest.mark.parametrize("value", ["maybe", "2", "enabled"])
    def test_invalid_bool(self, value):
        with pytest.raises(ConfigurationError, match="LOGIN|enabled"):
            MirrorSettings.from_env({"LOGIN_MIRROR_ENABLED": value})

    def test_invalid_int(self):
        with pytest.raises(ConfigurationError):
            MirrorSettings.from_env({"LOGIN_MIRROR_FAILURE_LOG_SIZE": "lots"})
        with pytest.raises(ConfigurationError):
            MirrorSettings.from_env({"LOGIN_MIRROR_FAILURE_LOG_SIZE": "0"})

    def test_close_timeout(self):
        assert MirrorSettings().close_timeout == 5.0
        settings = MirrorSettings.from_env({"LOGIN_MIRROR_CLOSE_TIMEOUT": "0.5"})
        assert settings.close_timeout == 0.5
        with pytest.raises(ConfigurationError, match="close_timeout"):
            MirrorSettings.from_env({"LOGIN_MIRROR_CLOSE_TIMEOUT": "soon"})
        with pytest.raises(ConfigurationError, match="close_timeout"):
            MirrorSettings.from_env({"LOGIN_MIRROR_CLOSE_TIMEOUT": "-1"})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="bogus"):
            MirrorSettings.from_mapping({"bogus": True})

    def test_merged_overrides(self):
        base = MirrorSettings(enabled=True, diff_on_noop=True)

        merged = base.merged({"enabled": "false"})

        assert merged.enabled is False
        assert merged.diff_on_noop is True

    def test_to_dict_stringifies_paths(self):
        data = MirrorSettings(audit_file=Path("audit/mirror.ndjson")).to_dict()

        assert data["audit_file"] == "audit/mirror.ndjson"

    def test_parse_bool(self):
        assert parse_bool(True, "x") is True
        assert parse_bool("OFF", "x") is False
        assert parse_bool("", "x") is False

    def test_env_overrides_only_set_values(self):
        assert env_overrides({"LOGIN_MIRROR_BLOCKING": "true"}) == {"blocking": "true"}


class TestLoadSettings:
    """Tests for the YAML settings loader."""

    def test_no_file(self):
        settings = load_settings(environ={})

        assert settings == MirrorSettings()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("enabled: true\ndiff_on_noop: true\nfailure_log_size: 10\n")

        settings = load_settings(path, environ={})

        assert settings.enabled is True
        assert settings.diff_on_noop is True
        assert settings.failure_log_size == 10

    def test_nested_mirror_key(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("mirror:\n  preskip_incompatible: true\n")

        assert load_settings(path, environ={}).preskip_incompatible is True

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("enabled: true\n")

        settings = load_settings(path, environ={"LOGIN_MIRROR_ENABLED": "false"})

        assert settings.enabled is False

    def test_path_from_env(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("blocking: true\n")

        settings = load_settings(environ={CONFIG_ENV_VAR: str(path)})

        assert settings.blocking is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="does not exist"):
            load_settings(tmp_path / "missing.yaml", environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("enabled: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(path, environ={})

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(path, environ={})

    def test_empty_file(self, tmp_path):
        path = tmp_path / "mirror.yaml"
        path.write_text("")

        assert load_settings(path, environ={}) == MirrorSettings()


class TestPolicySource:
    """Tests for PolicySource."""

    def test_allows_mirroring(self):
        policy = PolicySource(enabled=True)

        assert policy.allows_mirroring()
        policy.set_locked(True)
        assert not policy.allows_mirroring()
        assert policy.is_blocked()

    def test_disabled_flag(self):
        assert not PolicySource().allows_mirroring()

    def test_predicate_reread_each_check(self):
        state = {"locked": False}
        policy = PolicySource(enabled=True, blocked=lambda: state["locked"])

        assert policy.allows_mirroring()
        state["locked"] = True
        assert not policy.allows_mirroring()

    def test_change_notifications(self):
        policy = PolicySource()
        calls = []
        sub = policy.on_change(lambda: calls.append(policy.enabled))

        policy.set_enabled(True)
        policy.set_locked(True)
        sub.dispose()
        policy.set_enabled(False)

        assert calls == [True, True]

    def test_static_policy(self):
        assert StaticPolicy().allows_mirroring()
