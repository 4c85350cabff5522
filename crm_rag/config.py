"""
Application configuration.

Settings live in config/config.yaml and are parsed into pydantic models so
every stage receives typed values.  The keyword tables that drive intent
routing and filter extraction are part of the config rather than code, so a
deployment can tune them for its own document set.

Environment overrides:
    CRM_RAG_CONFIG     path to the YAML file
    CRM_RAG_LOG_LEVEL  log level for setup_logger()
    OPENAI_API_KEY     read by the OpenAI client (via .env if present)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

from crm_rag.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


# --- Default keyword tables ---------------------------------------------------

DEFAULT_COMPREHENSIVE_KEYWORDS = [
    "all", "every", "each", "total", "sum", "complete", "full", "entire",
    "everything", "processed", "files", "documents", "invoices", "expenses",
]

DEFAULT_FILE_EXTENSIONS = [".xlsx", ".csv", ".pdf", ".docx"]

# keyword -> substring expected in the target file name
DEFAULT_FILE_HINTS = {
    "money": "money.xlsx",
    "transactions": "transactions",
    "sales": "sales",
    "invoice": "invoice",
}

DEFAULT_STOPWORDS = [
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "my", "me", "is", "show", "view", "list", "see", "get",
    "find", "search", "all", "our", "their", "contact", "contacts", "account",
    "accounts", "deal", "deals", "activity", "activities", "title", "titles",
    "name", "named", "called", "who", "what", "which", "are", "from", "that",
    "have", "has", "please", "any",
]


# --- Section models -----------------------------------------------------------

class ChunkingConfig(BaseModel):
    chunk_size: int = 1000
    overlap: int = 200
    min_chunk_chars: int = 50
    boundary_ratio: float = 0.7

    @model_validator(mode="after")
    def _check_sizes(self) -> "ChunkingConfig":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.overlap < self.chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        return self


class EmbeddingConfig(BaseModel):
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 512
    timeout_seconds: float = 30.0
    max_attempts: int = 3


class RetrievalConfig(BaseModel):
    max_results: int = 3
    max_chunks_per_file: int = 5


class ContextConfig(BaseModel):
    max_tokens: int = 2000
    head_chars: int = 500
    tail_chars: int = 200
    estimator: str = "chars"        # "chars" | "tiktoken"


class ClassifierConfig(BaseModel):
    comprehensive_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_COMPREHENSIVE_KEYWORDS)
    )
    file_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS))
    file_hints: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_FILE_HINTS))


class QueryConfig(BaseModel):
    stopwords: list[str] = Field(default_factory=lambda: list(DEFAULT_STOPWORDS))
    min_term_length: int = 3
    clarification_threshold: int = 3
    sample_size: int = 5


class GenerationConfig(BaseModel):
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout_seconds: float = 60.0
    history_turns: int = 6


class StorageConfig(BaseModel):
    documents_file: str = "data/documents.json"
    records_file: str = "data/crm_records.json"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/crm_rag.log"
    json_file: bool = False


class AppConfig(BaseModel):
    """Root configuration object."""

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# --- Loading ------------------------------------------------------------------

def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from YAML.

    Resolution order: explicit path, $CRM_RAG_CONFIG, config/config.yaml.
    A missing default file yields built-in defaults; a missing explicit
    file or an invalid document raises ConfigError.
    """
    explicit = path or os.getenv("CRM_RAG_CONFIG")
    config_path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        logger.debug(f"[Config] {config_path} not found, using defaults")
        data: dict = {}
    else:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    env_level = os.getenv("CRM_RAG_LOG_LEVEL")
    if env_level:
        data.setdefault("logging", {})["level"] = env_level

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc
