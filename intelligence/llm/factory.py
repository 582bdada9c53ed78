"""
LLM Factory
Build an LLM instance from settings
"""
from typing import Optional
import logging

from utils.exceptions import ConfigurationError
from .base import BaseLLM
from .gemini_llm import GeminiLLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Build an LLM instance.

    Values not given explicitly come from ``LLMSettings`` (.env / environment).

    Args:
        provider: LLM provider (gemini)
        model: model name (provider default when omitted)
        **kwargs: extra parameters (api_key, temperature, max_tokens, timeout)

    Returns:
        BaseLLM instance

    Example:
        llm = get_llm()
        llm = get_llm(model="gemini-1.5-pro", temperature=0.3)
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = (provider or settings.provider or "").strip().lower()
    if provider not in DEFAULT_MODELS:
        raise ConfigurationError(
            f"Unsupported LLM provider: {provider}",
            {"supported": sorted(DEFAULT_MODELS)},
        )

    model = model or settings.model_name or DEFAULT_MODELS[provider]

    api_keys = {
        "gemini": settings.gemini_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)
    if not api_key:
        raise ConfigurationError(f"Missing API key for provider '{provider}' (set LLM_GEMINI_API_KEY)")

    default_params = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout,
    }
    for key, value in default_params.items():
        if key not in kwargs:
            kwargs[key] = value

    logger.debug("Creating LLM provider=%s model=%s", provider, model)
    return GeminiLLM(
        model=model,
        api_key=api_key,
        **kwargs,
    )
