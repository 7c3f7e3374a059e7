"""Config loading from ~/.doubletab/config.json with env var overrides."""

from __future__ import annotations

import json
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_DIR = Path.home() / ".doubletab"
CONFIG_PATH = CONFIG_DIR / "config.json"


class MemoryConfig(BaseModel):
    recall_limit: int = 5
    knowledge_limit: int = 1


class BuildConfig(BaseModel):
    generate_command: list[str] = Field(default_factory=lambda: ["go", "generate", "./..."])
    build_command: list[str] = Field(default_factory=lambda: ["go", "build", "./..."])
    timeout: float = 300.0


class EmbeddingConfig(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="DOUBLETAB_EMBEDDING_",
        extra="ignore",
    )
    provider: str = "compat"  # compat | ollama
    api_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "text-embedding-ada-002"
    dimensions: int = 1536
    ollama_url: str = "http://localhost:11434"


class LLMConfig(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="DOUBLETAB_LLM_",
        extra="ignore",
    )
    base_url: str | None = None
    api_key: str | None = None
    chat_model: str = "gpt-4o"
    code_model: str = "gpt-4o"
    timeout: float = 120.0
    max_retries: int = 0
    seed: int | None = 1


class DoubleTabConfig(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="DOUBLETAB_",
        extra="ignore",
    )
    db_path: str = Field(default_factory=lambda: str(CONFIG_DIR / "doubletab.db"))
    # Database of the application being built (list_tables / store_schema)
    project_db_path: str = Field(default_factory=lambda: str(Path.cwd() / "app.db"))
    project_root: str = Field(default_factory=lambda: str(Path.cwd()))
    initial_query: str | None = None
    log_level: str = "WARNING"
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    # Sub-configs
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)


def loadConfig() -> DoubleTabConfig:
    """Load config from ~/.doubletab/config.json with env var overrides."""
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        return DoubleTabConfig(**raw)
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = DoubleTabConfig()
    CONFIG_PATH.write_text(config.model_dump_json(indent=2))
    return config
