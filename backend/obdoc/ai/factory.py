"""
Analysis Provider Factory - Creates the configured AI analysis providers.
"""

import logging
from typing import Optional, List, Any

from .base import AnalysisProvider
from .openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)

PROVIDER_DEFAULTS = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o-mini",
    },
    "claude": {
        "base_url": "https://api.anthropic.com/v1",
        "model": "claude-3-5-haiku-latest",
    },
    "google": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai",
        "model": "gemini-1.5-flash",
    },
}


def create_analysis_provider(
    provider: str = "openai",
    api_key: str = "",
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs
) -> Optional[AnalysisProvider]:
    """
    Create an analysis provider instance.

    Args:
        provider: Provider name ("openai", "claude" or "google")
        api_key: API key for the provider
        model: Model name (uses provider default if not specified)
        base_url: Custom base URL (uses provider default if not specified)
        **kwargs: cost_per_request, timeout and other provider parameters

    Returns:
        AnalysisProvider instance, or None if api_key is not configured
    """
    if provider not in PROVIDER_DEFAULTS:
        raise ValueError(f"Unsupported AI provider: {provider}")

    if not api_key:
        return None

    defaults = PROVIDER_DEFAULTS[provider]
    return OpenAICompatibleProvider(
        name=provider,
        api_key=api_key,
        model=model or defaults["model"],
        base_url=base_url or defaults["base_url"],
        **kwargs
    )


def build_providers(config: Any) -> List[AnalysisProvider]:
    """
    Build every configured provider, in fallback order.
    Providers without an API key are skipped.
    """
    providers: List[AnalysisProvider] = []
    for name in config.ai_fallback_order:
        provider = create_analysis_provider(
            provider=name,
            api_key=getattr(config, f"{name}_api_key", None) or "",
            model=getattr(config, f"{name}_model", None),
            base_url=getattr(config, f"{name}_base_url", None),
            cost_per_request=getattr(config, f"{name}_cost_per_request"),
            timeout=getattr(config, f"{name}_timeout"),
        )
        if provider is None:
            logger.info(f"AI provider {name} not configured, skipping")
            continue
        providers.append(provider)
    return providers
