# Taskboard configuration
# Override defaults via a YAML file, then TASKBOARD_* environment variables.

import logging
import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.yaml"

# env var -> (field name, type)
ENV_OVERRIDES = {
    "TASKBOARD_DB": ("db_path", str),
    "TASKBOARD_SECRET_KEY": ("secret_key", str),
    "TASKBOARD_LLM_PROVIDER": ("llm_provider", str),
    "TASKBOARD_LLM_MODEL": ("llm_model", str),
    "TASKBOARD_LLM_BASE_URL": ("llm_base_url", str),
    "TASKBOARD_LLM_TIMEOUT": ("llm_timeout", float),
    "TASKBOARD_LOG_LEVEL": ("log_level", str),
}


@dataclass
class Config:
    """Runtime configuration for the task board server."""

    # Storage
    db_path: str = "~/.local/share/taskboard/taskboard.db"

    # HTTP
    host: str = "127.0.0.1"
    port: int = 3000
    api_prefix: str = "/api"
    secret_key: str = ""

    # Model provider: "openai" (any OpenAI-compatible endpoint) or "rules" (offline)
    llm_provider: str = ""
    llm_api_key_env: str = "OPENAI_API_KEY"
    llm_base_url: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.2
    llm_timeout: float = 30.0

    # Pipeline
    ai_source_label: str = "AI Assistant"
    reconcile_workers: int = 4

    log_level: str = "INFO"

    @property
    def llm_api_key(self) -> Optional[str]:
        return os.environ.get(self.llm_api_key_env) or None

    def resolve(self):
        """Expand ~ and pick the provider when none was configured."""
        self.db_path = str(Path(self.db_path).expanduser())
        if not self.llm_provider:
            self.llm_provider = "openai" if self.llm_api_key else "rules"
        self.llm_provider = self.llm_provider.strip().lower()
        if not self.secret_key:
            # Sessions will not survive a restart without a configured key
            self.secret_key = os.urandom(24).hex()

    def apply_env(self):
        """Override fields from TASKBOARD_* environment variables."""
        for env_name, (attr, kind) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None or not raw.strip():
                continue
            try:
                setattr(self, attr, kind(raw.strip()))
            except ValueError:
                logger.warning("Ignoring %s=%r: expected %s", env_name, raw, kind.__name__)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.resolve()
        return cfg
