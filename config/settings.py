"""
Settings Configuration
Pydantic-validated configuration loaded from the environment / .env
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class GeneralSettings(BaseSettings):
    """General application settings"""
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Optional[str] = Field(default=None, description="Log file name under logs/ (optional)")

    class Config:
        env_prefix = "APP_"


class LLMSettings(BaseSettings):
    """LLM provider settings"""
    provider: str = Field(default="gemini", description="LLM provider (only gemini supports search grounding)")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when unset)")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=8192, description="Maximum output tokens")
    timeout: float = Field(default=120.0, description="Request timeout in seconds")

    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API Key")

    class Config:
        env_prefix = "LLM_"


class ResearchSettings(BaseSettings):
    """Research workflow settings"""
    max_retries: int = Field(default=2, ge=0, description="Rewrite budget per research run")
    brainstorm_count: int = Field(default=10, ge=1, description="Candidate queries requested when brainstorming")
    refined_count: int = Field(default=5, ge=1, description="Queries kept after reflection")
    followup_context_chars: int = Field(default=20000, ge=1, description="Report characters sent as follow-up context")

    class Config:
        env_prefix = "RESEARCH_"


class Settings(BaseSettings):
    """Top-level settings aggregating every group"""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    research: ResearchSettings = Field(default_factory=ResearchSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading the given .env file (default ``config/.env``) first."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            general=GeneralSettings(),
            llm=LLMSettings(),
            research=ResearchSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_general_settings() -> GeneralSettings:
    return get_settings().general


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_research_settings() -> ResearchSettings:
    return get_settings().research
