from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Completion service (OpenAI-compatible). No key => template answers only.
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(None, alias="OPENAI_BASE_URL")
    llm_model: str = Field("gpt-4o-mini", alias="LLM_MODEL")
    llm_timeout_seconds: float = Field(20.0, alias="LLM_TIMEOUT_SECONDS")
    llm_temperature: float = Field(0.3, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(800, alias="LLM_MAX_TOKENS")

    # Storage
    database_url: str = Field("sqlite:///./rulesapp.db", alias="DATABASE_URL")
    blob_root: str = Field("./data/blobs", alias="BLOB_ROOT")

    # Query context
    default_season_id: str = Field("2025", alias="DEFAULT_SEASON_ID")

    # Retrieval / answering
    retrieval_top_k: int = Field(15, alias="RETRIEVAL_TOP_K")
    min_relevance_score: float = Field(1.0, alias="MIN_RELEVANCE_SCORE")
    max_context: int = Field(5, alias="MAX_CONTEXT")
    max_query_length: int = Field(500, alias="MAX_QUERY_LENGTH")
    grounding_mode: Literal["strict", "warn"] = Field("strict", alias="GROUNDING_MODE")

    # Chunking (characters)
    min_chunk_size: int = Field(200, alias="MIN_CHUNK_SIZE")
    target_chunk_size: int = Field(2000, alias="TARGET_CHUNK_SIZE")
    max_chunk_size: int = Field(4000, alias="MAX_CHUNK_SIZE")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")


settings = Settings()
