"""
Configuration Management for Langoustine

Loads configuration from ~/.langoustine/config.json and environment variables.
Command-line overrides are applied by the server entry point.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigError

logger = logging.getLogger("langoustine.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".langoustine"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_DB_PATH = "./.langoustine/langoustine.db"


@dataclass
class DatabaseConfig:
    """SQLite database configuration"""
    path: str = DEFAULT_DB_PATH


@dataclass
class LLMConfig:
    """Rule classifier LLM configuration"""
    provider: str = "openai"
    openai_api_key: str = ""
    model: str = "gpt-5-mini-2025-08-07"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    max_retries: int = 3  # total attempts
    retry_delay_ms: int = 1000  # linear backoff base


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = "text-embedding-3-small"
    max_retries: int = 3  # additional attempts after the first call
    retry_delay_ms: int = 1000  # exponential backoff base


@dataclass
class RetrieverConfig:
    """Relevant-rule retrieval defaults"""
    max_results: int = 5
    similarity_threshold: float = 0.0


@dataclass
class LangoustineConfig:
    """Main Langoustine configuration"""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)

    @property
    def embedding_api_key(self) -> str:
        """Embeddings are always generated through OpenAI."""
        return self.llm.openai_api_key


def parse_int(value: Optional[str], field_name: str) -> Optional[int]:
    """Parse an integer setting, naming the field on failure."""
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip(), 10)
    except ValueError:
        raise ConfigError(f'Invalid {field_name}: "{value}" is not a valid number')


def parse_float(value: Optional[str], field_name: str) -> Optional[float]:
    """Parse a float setting, naming the field on failure."""
    if value is None or value == "":
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        raise ConfigError(f'Invalid {field_name}: "{value}" is not a valid number')


def _parse_database_config(data: dict) -> DatabaseConfig:
    """Parse database section from config dict"""
    db_data = data.get("database", {})
    return DatabaseConfig(path=db_data.get("path", DEFAULT_DB_PATH))


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        openai_api_key=llm_data.get("openai_api_key", ""),
        model=llm_data.get("model", defaults.model),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        max_retries=int(llm_data.get("max_retries", defaults.max_retries)),
        retry_delay_ms=int(llm_data.get("retry_delay_ms", defaults.retry_delay_ms)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        model=embedding_data.get("model", defaults.model),
        max_retries=int(embedding_data.get("max_retries", defaults.max_retries)),
        retry_delay_ms=int(embedding_data.get("retry_delay_ms", defaults.retry_delay_ms)),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        max_results=int(retriever_data.get("max_results", 5)),
        similarity_threshold=float(retriever_data.get("similarity_threshold", 0.0)),
    )


def _config_path() -> Path:
    override = os.getenv("LANGOUSTINE_CONFIG")
    if override:
        return Path(override).expanduser()
    return CONFIG_PATH


def load_config() -> LangoustineConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.langoustine/config.json or $LANGOUSTINE_CONFIG)
    3. Default values
    """
    config = LangoustineConfig()

    path = _config_path()
    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)

            config.database = _parse_database_config(data)
            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.retriever = _parse_retriever_config(data)
        except (json.JSONDecodeError, IOError, ValueError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", path, e)

    if os.getenv("LANGOUSTINE_DB_PATH"):
        config.database.path = os.getenv("LANGOUSTINE_DB_PATH")

    # API keys: the Langoustine-specific variable wins over the generic one
    openai_key = os.getenv("LANGOUSTINE_MCP_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY")
    if openai_key:
        config.llm.openai_api_key = openai_key
        config._env_sourced_keys.add("openai_api_key")
    if os.getenv("ANTHROPIC_API_KEY"):
        config.llm.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY")
        config._env_sourced_keys.add("anthropic_api_key")

    _env_str_map = {
        "LANGOUSTINE_LLM_PROVIDER": (config.llm, "provider"),
        "LLM_MODEL": (config.llm, "model"),
        "ANTHROPIC_MODEL": (config.llm, "anthropic_model"),
        "OPENAI_EMBEDDING_MODEL": (config.embedding, "model"),
    }
    for env_var, (section, attr) in _env_str_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)

    _env_int_map = {
        "LLM_MAX_RETRIES": (config.llm, "max_retries"),
        "LLM_RETRY_DELAY": (config.llm, "retry_delay_ms"),
        "EMBEDDING_MAX_RETRIES": (config.embedding, "max_retries"),
        "EMBEDDING_RETRY_DELAY": (config.embedding, "retry_delay_ms"),
        "LANGOUSTINE_MAX_RESULTS": (config.retriever, "max_results"),
    }
    for env_var, (section, attr) in _env_int_map.items():
        val = parse_int(os.getenv(env_var), f"{env_var} environment variable")
        if val is not None:
            setattr(section, attr, val)

    threshold = parse_float(
        os.getenv("LANGOUSTINE_SIMILARITY_THRESHOLD"),
        "LANGOUSTINE_SIMILARITY_THRESHOLD environment variable",
    )
    if threshold is not None:
        config.retriever.similarity_threshold = threshold

    return config


def save_config(config: LangoustineConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "openai_api_key": config.llm.openai_api_key,
        "model": config.llm.model,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "max_retries": config.llm.max_retries,
        "retry_delay_ms": config.llm.retry_delay_ms,
    }
    for key in ("openai_api_key", "anthropic_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "database": {"path": config.database.path},
        "llm": llm_section,
        "embedding": {
            "model": config.embedding.model,
            "max_retries": config.embedding.max_retries,
            "retry_delay_ms": config.embedding.retry_delay_ms,
        },
        "retriever": {
            "max_results": config.retriever.max_results,
            "similarity_threshold": config.retriever.similarity_threshold,
        },
    }

    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    path.chmod(0o600)
