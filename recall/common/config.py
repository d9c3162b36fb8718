"""
Configuration Management for Reminder Recall

Loads configuration from ~/.recall/config.json, a local .env file and
environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger("recall.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".recall"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class LLMConfig:
    """Generative provider used by the general-query branch"""
    provider: str = "groq"
    groq_api_key: str = ""
    groq_model: str = "llama-3.1-8b-instant"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"

    @property
    def api_key(self) -> str:
        """API key of the selected provider"""
        return getattr(self, f"{self.provider}_api_key", "")

    @property
    def model(self) -> str:
        """Model of the selected provider"""
        return getattr(self, f"{self.provider}_model", "")


@dataclass
class EmbeddingConfig:
    """Embedding backend configuration"""
    backend: str = "fastembed"  # fastembed (on-device), openai, huggingface
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int = 384
    api_key: str = ""


@dataclass
class StoreConfig:
    """Reminder store, vector index and embedded-content store"""
    backend: str = "memory"  # memory, supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    reminders_table: str = "reminders"
    content_table: str = "reminder_embeddings"
    match_function: str = "match_reminders"


@dataclass
class RetrieverConfig:
    """Retrieval, fusion and synthesis tuning"""
    similarity_threshold: float = 0.3
    vector_count: int = 10
    keyword_limit: int = 5
    embed_keyword_limit: int = 5
    fused_limit: int = 10
    strategy_timeout: float = 5.0
    hydration_timeout: float = 5.0
    synthesis_timeout: float = 15.0
    timezone: str = "UTC"


@dataclass
class ServerConfig:
    """HTTP surface configuration"""
    host: str = "0.0.0.0"
    port: int = 8080
    admin_secret: str = ""
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class RecallConfig:
    """Main Reminder Recall configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        groq_api_key=llm_data.get("groq_api_key", ""),
        groq_model=llm_data.get("groq_model", defaults.groq_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        backend=embedding_data.get("backend", defaults.backend),
        model=embedding_data.get("model", defaults.model),
        dimension=int(embedding_data.get("dimension", defaults.dimension)),
        api_key=embedding_data.get("api_key", ""),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    defaults = StoreConfig()
    return StoreConfig(
        backend=store_data.get("backend", defaults.backend),
        supabase_url=store_data.get("supabase_url", ""),
        supabase_anon_key=store_data.get("supabase_anon_key", ""),
        supabase_service_role_key=store_data.get("supabase_service_role_key", ""),
        reminders_table=store_data.get("reminders_table", defaults.reminders_table),
        content_table=store_data.get("content_table", defaults.content_table),
        match_function=store_data.get("match_function", defaults.match_function),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    defaults = RetrieverConfig()
    return RetrieverConfig(
        similarity_threshold=float(retriever_data.get("similarity_threshold", defaults.similarity_threshold)),
        vector_count=int(retriever_data.get("vector_count", defaults.vector_count)),
        keyword_limit=int(retriever_data.get("keyword_limit", defaults.keyword_limit)),
        embed_keyword_limit=int(retriever_data.get("embed_keyword_limit", defaults.embed_keyword_limit)),
        fused_limit=int(retriever_data.get("fused_limit", defaults.fused_limit)),
        strategy_timeout=float(retriever_data.get("strategy_timeout", defaults.strategy_timeout)),
        hydration_timeout=float(retriever_data.get("hydration_timeout", defaults.hydration_timeout)),
        synthesis_timeout=float(retriever_data.get("synthesis_timeout", defaults.synthesis_timeout)),
        timezone=retriever_data.get("timezone", defaults.timezone),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 8080)),
        admin_secret=server_data.get("admin_secret", ""),
        cors_origins=list(server_data.get("cors_origins", ["*"])),
    )


# Environment variable -> (section, attribute). Secrets are tracked so that
# save_config never writes them to disk.
_ENV_MAP = {
    "RECALL_LLM_PROVIDER": ("llm", "provider"),
    "GROQ_API_KEY": ("llm", "groq_api_key"),
    "GROQ_MODEL": ("llm", "groq_model"),
    "OPENAI_API_KEY": ("llm", "openai_api_key"),
    "OPENAI_MODEL": ("llm", "openai_model"),
    "ANTHROPIC_API_KEY": ("llm", "anthropic_api_key"),
    "ANTHROPIC_MODEL": ("llm", "anthropic_model"),
    "GOOGLE_API_KEY": ("llm", "google_api_key"),
    "GEMINI_API_KEY": ("llm", "google_api_key"),
    "GOOGLE_MODEL": ("llm", "google_model"),
    "EMBEDDING_BACKEND": ("embedding", "backend"),
    "EMBEDDING_MODEL": ("embedding", "model"),
    "EMBEDDING_API_KEY": ("embedding", "api_key"),
    "HF_API_KEY": ("embedding", "api_key"),
    "RECALL_STORE_BACKEND": ("store", "backend"),
    "SUPABASE_URL": ("store", "supabase_url"),
    "SUPABASE_ANON_KEY": ("store", "supabase_anon_key"),
    "SUPABASE_SERVICE_ROLE_KEY": ("store", "supabase_service_role_key"),
    "RECALL_MATCH_FUNCTION": ("store", "match_function"),
    "RECALL_CONTENT_TABLE": ("store", "content_table"),
    "RECALL_TIMEZONE": ("retriever", "timezone"),
    "RECALL_HOST": ("server", "host"),
    "ADMIN_SECRET_KEY": ("server", "admin_secret"),
}

_TYPED_ENV = [
    ("EMBEDDING_DIMENSION", ("embedding", "dimension"), int),
    ("RECALL_PORT", ("server", "port"), int),
    ("RECALL_SIMILARITY_THRESHOLD", ("retriever", "similarity_threshold"), float),
]

_SECRET_FIELDS = {
    "groq_api_key", "openai_api_key", "anthropic_api_key", "google_api_key",
    "api_key", "supabase_anon_key", "supabase_service_role_key", "admin_secret",
}


def load_config() -> RecallConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a local .env file)
    2. Config file (~/.recall/config.json)
    3. Default values
    """
    load_dotenv()
    config = RecallConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.store = _parse_store_config(data)
            config.retriever = _parse_retriever_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load config file: %s", e)

    for env_var, (section, attr) in _ENV_MAP.items():
        val = os.getenv(env_var)
        if val:
            setattr(getattr(config, section), attr, val)
            if attr in _SECRET_FIELDS:
                config._env_sourced_keys.add(f"{section}.{attr}")

    # Typed overrides; unparseable values keep the previous setting
    for env_var, (section, attr), cast in _TYPED_ENV:
        val = os.getenv(env_var)
        if not val:
            continue
        try:
            setattr(getattr(config, section), attr, cast(val))
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", env_var, val)

    config.llm.provider = config.llm.provider.lower()
    return config


def save_config(config: RecallConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    def _section(name: str, values: dict) -> dict:
        for key in values:
            if f"{name}.{key}" in env_sourced:
                values[key] = ""
        return values

    data = {
        "llm": _section("llm", {
            "provider": config.llm.provider,
            "groq_api_key": config.llm.groq_api_key,
            "groq_model": config.llm.groq_model,
            "openai_api_key": config.llm.openai_api_key,
            "openai_model": config.llm.openai_model,
            "anthropic_api_key": config.llm.anthropic_api_key,
            "anthropic_model": config.llm.anthropic_model,
            "google_api_key": config.llm.google_api_key,
            "google_model": config.llm.google_model,
        }),
        "embedding": _section("embedding", {
            "backend": config.embedding.backend,
            "model": config.embedding.model,
            "dimension": config.embedding.dimension,
            "api_key": config.embedding.api_key,
        }),
        "store": _section("store", {
            "backend": config.store.backend,
            "supabase_url": config.store.supabase_url,
            "supabase_anon_key": config.store.supabase_anon_key,
            "supabase_service_role_key": config.store.supabase_service_role_key,
            "reminders_table": config.store.reminders_table,
            "content_table": config.store.content_table,
            "match_function": config.store.match_function,
        }),
        "retriever": {
            "similarity_threshold": config.retriever.similarity_threshold,
            "vector_count": config.retriever.vector_count,
            "keyword_limit": config.retriever.keyword_limit,
            "embed_keyword_limit": config.retriever.embed_keyword_limit,
            "fused_limit": config.retriever.fused_limit,
            "strategy_timeout": config.retriever.strategy_timeout,
            "hydration_timeout": config.retriever.hydration_timeout,
            "synthesis_timeout": config.retriever.synthesis_timeout,
            "timezone": config.retriever.timezone,
        },
        "server": _section("server", {
            "host": config.server.host,
            "port": config.server.port,
            "admin_secret": config.server.admin_secret,
            "cors_origins": config.server.cors_origins,
        }),
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
