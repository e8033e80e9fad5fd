"""chatdesk Configuration.

Includes:
- AppConfig: Main application settings with environment variable support
- UserMapping: Chat user ids mapped to GitLab usernames

Environment Variables:
    CHATDESK_GITLAB_GROUP: Group used for list and review queries
    CHATDESK_DEFAULT_PROJECT: Project used when a message names none
    CHATDESK_ALLOWED_PROJECTS: JSON list of projects glab may touch
    CHATDESK_GITLAB_HOST: GitLab host exported to glab as GITLAB_HOST
    CHATDESK_LLM_PROVIDER: "ollama" or "openai"
    CHATDESK_LLM_MODEL: Model name for classification and summaries
    CHATDESK_LLM_ENDPOINT: LLM API base URL
    CHATDESK_LLM_API_KEY: API key for OpenAI-compatible gateways
    CHATDESK_FEISHU_APP_ID / CHATDESK_FEISHU_APP_SECRET: Feishu app credentials
    CHATDESK_FEISHU_TASKS: Also create a Feishu task for each new issue
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.intent.entities import DEFAULT_DOC_HOST_PATTERN

CONFIG_DIR = ".chatdesk"
CONFIG_FILE = "config.yaml"

# Never written back to the YAML file
SECRET_FIELDS = {"llm_api_key", "feishu_app_secret"}


class UserMapping(BaseModel):
    """Chat user ids mapped to GitLab usernames.

    Attributes:
        users: {chat user id: GitLab username}
    """

    users: dict[str, str] = Field(default_factory=dict)

    def gitlab_username(self, user_id: str) -> Optional[str]:
        """Look up the GitLab username for a chat user."""
        return self.users.get(user_id)


class AppConfig(BaseSettings):
    """Application configuration with environment variable support.

    Configuration is loaded from environment variables with CHATDESK_ prefix.
    For example, CHATDESK_GITLAB_GROUP sets gitlab_group.

    Precedence (highest to lowest):
        1. Environment variables (CHATDESK_*)
        2. Config file (.chatdesk/config.yaml)
        3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATDESK_",
        env_nested_delimiter="__",
        arbitrary_types_allowed=True,
        extra="ignore",
    )

    project_path: Path = Field(default_factory=Path.cwd)

    # GitLab via glab
    gitlab_group: str = "dpa"
    default_project: str = "dpa/dpa-mom/task"
    allowed_projects: list[str] = Field(default_factory=lambda: ["dpa/dpa-mom/task"])
    gitlab_host: str = ""
    glab_path: str = "glab"
    glab_timeout: float = 30.0

    # Documents are recognized by this URL pattern
    doc_host_pattern: str = DEFAULT_DOC_HOST_PATTERN

    # LLM used for classification fallback and summaries
    llm_provider: Literal["ollama", "openai"] = "ollama"
    llm_model: str = "qwen2.5:7b"
    llm_endpoint: str = "http://localhost:11434"
    llm_api_key: Optional[str] = None
    llm_timeout: float = 15.0

    handler_timeout: float = 60.0
    history_limit: int = 50

    # Thread links; None means <project>/.chatdesk/links.json
    store_path: Optional[Path] = None

    # Feishu open platform
    feishu_app_id: Optional[str] = None
    feishu_app_secret: Optional[str] = None
    feishu_endpoint: str = "https://open.feishu.cn"
    # Mirror new issues as Feishu tasks
    feishu_tasks: bool = False

    user_mapping: UserMapping = Field(default_factory=UserMapping)

    @property
    def config_file(self) -> Path:
        return self.project_path / CONFIG_DIR / CONFIG_FILE

    @property
    def links_file(self) -> Path:
        """Path of the JSON linked-reference store."""
        return self.store_path or self.project_path / CONFIG_DIR / "links.json"

    def has_feishu(self) -> bool:
        """Check if Feishu credentials are configured."""
        return bool(self.feishu_app_id and self.feishu_app_secret)

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        """Load configuration from .chatdesk/config.yaml if it exists.

        Environment variables still win over values in the file.

        Args:
            path: Project path to load configuration for

        Returns:
            AppConfig with file values applied (or defaults if no config exists)
        """
        from ruamel.yaml import YAML

        config = cls(project_path=path)
        config_file = config.config_file

        if not config_file.exists():
            return config

        yaml = YAML(typ="safe")
        with config_file.open() as f:
            data = yaml.load(f) or {}

        # Fields set from the environment (or the path argument) take precedence
        explicit = {name: getattr(config, name) for name in config.model_fields_set}
        merged = {key: value for key, value in data.items() if key in cls.model_fields}
        merged.update(explicit)
        return cls(**merged)

    def save(self) -> None:
        """Save configuration to .chatdesk/config.yaml in the project path.

        Secrets are left out of the file.
        """
        from ruamel.yaml import YAML

        config_file = self.config_file
        config_file.parent.mkdir(parents=True, exist_ok=True)

        yaml = YAML()
        yaml.default_flow_style = False

        data = self.model_dump(mode="json", exclude=SECRET_FIELDS | {"project_path"})
        if data.get("store_path") is None:
            data.pop("store_path", None)

        with config_file.open("w") as f:
            yaml.dump(data, f)


__all__ = ["AppConfig", "UserMapping"]
