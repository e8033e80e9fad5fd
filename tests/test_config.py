"""Tests for chatdesk.config module.

Covers:
- UserMapping lookups
- AppConfig defaults and environment variable support
- Configuration load/save to YAML
"""

from __future__ import annotations

from pathlib import Path

from chatdesk.config import AppConfig, UserMapping

# ============================================================================
# UserMapping Tests
# ============================================================================


class TestUserMapping:
    """Tests for UserMapping model."""

    def test_default_empty(self):
        assert UserMapping().users == {}

    def test_lookup(self):
        mapping = UserMapping(users={"ou_alice": "alice"})

        assert mapping.gitlab_username("ou_alice") == "alice"
        assert mapping.gitlab_username("ou_bob") is None


# ============================================================================
# AppConfig Tests
# ============================================================================


class TestAppConfigDefaults:
    """Tests for AppConfig default values."""

    def test_defaults(self, tmp_path):
        config = AppConfig(project_path=tmp_path)

        assert config.gitlab_group == "dpa"
        assert config.default_project == "dpa/dpa-mom/task"
        assert config.allowed_projects == ["dpa/dpa-mom/task"]
        assert config.llm_provider == "ollama"
        assert config.llm_endpoint == "http://localhost:11434"
        assert config.llm_api_key is None
        assert config.handler_timeout == 60.0
        assert config.history_limit == 50

    def test_paths(self, tmp_path):
        config = AppConfig(project_path=tmp_path)

        assert config.config_file == tmp_path / ".chatdesk" / "config.yaml"
        assert config.links_file == tmp_path / ".chatdesk" / "links.json"

    def test_store_path_override(self, tmp_path):
        config = AppConfig(project_path=tmp_path, store_path=tmp_path / "shared.json")

        assert config.links_file == tmp_path / "shared.json"

    def test_has_feishu(self, tmp_path):
        assert AppConfig(project_path=tmp_path).has_feishu() is False
        assert AppConfig(project_path=tmp_path, feishu_app_id="cli_x").has_feishu() is False
        assert AppConfig(project_path=tmp_path, feishu_app_id="cli_x", feishu_app_secret="s").has_feishu() is True


class TestAppConfigEnvironment:
    """Tests for CHATDESK_* environment variables."""

    def test_gitlab_group_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHATDESK_GITLAB_GROUP", "platform")

        assert AppConfig(project_path=tmp_path).gitlab_group == "platform"

    def test_allowed_projects_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHATDESK_ALLOWED_PROJECTS", '["a/b", "c/d"]')

        assert AppConfig(project_path=tmp_path).allowed_projects == ["a/b", "c/d"]

    def test_llm_provider_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHATDESK_LLM_PROVIDER", "openai")
        monkeypatch.setenv("CHATDESK_LLM_API_KEY", "sk-test")

        config = AppConfig(project_path=tmp_path)

        assert config.llm_provider == "openai"
        assert config.llm_api_key == "sk-test"

    def test_user_mapping_nested_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHATDESK_USER_MAPPING__USERS", '{"ou_alice": "alice"}')

        assert AppConfig(project_path=tmp_path).user_mapping.gitlab_username("ou_alice") == "alice"


class TestAppConfigPersistence:
    """Tests for load/save."""

    def test_load_without_file(self, tmp_path):
        config = AppConfig.load(tmp_path)

        assert config.project_path == tmp_path
        assert config.gitlab_group == "dpa"

    def test_load_from_yaml(self, tmp_path):
        config_dir = tmp_path / ".chatdesk"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text(
            "gitlab_group: platform\n"
            "allowed_projects:\n"
            "  - platform/api\n"
            "user_mapping:\n"
            "  users:\n"
            "    ou_alice: alice\n"
            "unknown_key: ignored\n"
        )

        config = AppConfig.load(tmp_path)

        assert config.gitlab_group == "platform"
        assert config.allowed_projects == ["platform/api"]
        assert config.user_mapping.users == {"ou_alice": "alice"}
        assert config.project_path == tmp_path

    def test_env_wins_over_file(self, monkeypatch, tmp_path):
        config_dir = tmp_path / ".chatdesk"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("gitlab_group: platform\n")
        monkeypatch.setenv("CHATDESK_GITLAB_GROUP", "from-env")

        assert AppConfig.load(tmp_path).gitlab_group == "from-env"

    def test_save_and_reload(self, tmp_path):
        config = AppConfig(
            project_path=tmp_path,
            default_project="dpa/dagster",
            allowed_projects=["dpa/dagster", "dpa/dpa-mom/task"],
            user_mapping=UserMapping(users={"ou_alice": "alice"}),
        )

        config.save()
        reloaded = AppConfig.load(tmp_path)

        assert reloaded.default_project == "dpa/dagster"
        assert reloaded.allowed_projects == ["dpa/dagster", "dpa/dpa-mom/task"]
        assert reloaded.user_mapping.gitlab_username("ou_alice") == "alice"

    def test_save_leaves_out_secrets(self, tmp_path):
        config = AppConfig(
            project_path=tmp_path,
            llm_api_key="sk-secret",
            feishu_app_id="cli_x",
            feishu_app_secret="very-secret",
        )

        config.save()
        text = config.config_file.read_text()

        assert "sk-secret" not in text
        assert "very-secret" not in text
        assert "cli_x" in text
        assert "project_path" not in text
        assert "store_path" not in text
