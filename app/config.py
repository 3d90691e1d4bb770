"""
Runtime configuration read from the environment (.env is loaded by main.py).

    LLM_PROVIDER               GEMINI (default) | OPENAI | NONE
    OPENAI_API_BASE_URL / OPENAI_API_KEY / OPENAI_API_MODEL
    GEMINI_API_KEY / GEMINI_API_MODEL
    LOG_LEVEL                  DEBUG, INFO, ...
    RPG_DEFAULT_LANGUAGE       es | en
    RPG_CONFIDENCE_THRESHOLD   0.0 - 1.0
    RPG_SESSION_TIMEOUT_MS     inactivity window before a session expires
"""

import logging
import os
from typing import Optional

from app.llm.gemini_connector import GeminiConnector
from app.llm.llm_connector import LLMConnector
from app.llm.openai_connector import OpenAIConnector
from app.models.intent import IntentDetectorConfig
from app.models.orchestration import OrchestratorConfig

logger = logging.getLogger(__name__)


def get_llm_connector() -> Optional[LLMConnector]:
    """Connector for LLM_PROVIDER, or None when the provider is NONE (rules only)."""
    provider = os.environ.get("LLM_PROVIDER", "GEMINI").upper()
    if provider == "GEMINI":
        return GeminiConnector()
    elif provider == "OPENAI":
        return OpenAIConnector()
    elif provider == "NONE":
        logger.info("LLM_PROVIDER=NONE, running with rule-based extraction only")
        return None
    else:
        raise ValueError(f"Unsupported LLM_PROVIDER: {provider}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}")
        return default


def default_language() -> str:
    language = os.environ.get("RPG_DEFAULT_LANGUAGE", "es").lower()
    if language not in ("es", "en"):
        logger.warning(f"Unsupported RPG_DEFAULT_LANGUAGE={language!r}, using 'es'")
        return "es"
    return language


def orchestrator_config_from_env() -> OrchestratorConfig:
    defaults = OrchestratorConfig()
    threshold = _env_float("RPG_CONFIDENCE_THRESHOLD", defaults.confidence_threshold)
    return OrchestratorConfig(
        confidence_threshold=min(max(threshold, 0.0), 1.0),
        session_timeout_ms=int(_env_float("RPG_SESSION_TIMEOUT_MS", defaults.session_timeout_ms)),
    )


def intent_config_from_env() -> IntentDetectorConfig:
    defaults = IntentDetectorConfig()
    threshold = _env_float("RPG_CONFIDENCE_THRESHOLD", defaults.default_confidence_threshold)
    return IntentDetectorConfig(
        default_confidence_threshold=min(max(threshold, 0.0), 1.0),
        default_language=default_language(),
    )
