import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict

from app.core.exceptions import ExternalProviderFailure
from app.models.prompt import BuiltPrompt

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.S)


class LLMConnector(ABC):
    provider_name = "llm"

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """
        Single-turn completion. Implementations wrap every provider error
        in ExternalProviderFailure.
        """
        pass

    def complete_prompt(self, prompt: BuiltPrompt) -> str:
        """Run a built prompt. Whatever the connector raises surfaces as ExternalProviderFailure."""
        try:
            return self.complete(
                prompt.system_prompt,
                prompt.user_prompt,
                max_tokens=prompt.max_tokens,
                temperature=prompt.temperature,
                json_mode=prompt.expected_format == "json",
            )
        except ExternalProviderFailure:
            raise
        except Exception as e:
            logger.error(f"{self.provider_name} connector raised {type(e).__name__}: {e}", exc_info=True)
            raise ExternalProviderFailure(self.provider_name, e) from e

    def complete_json(self, prompt: BuiltPrompt) -> Dict[str, Any]:
        """Completion parsed as a JSON object. Unparseable output is a provider failure."""
        text = self.complete_prompt(prompt)
        return parse_json_object(text, self.provider_name)


def parse_json_object(text: str, provider: str = "llm") -> Dict[str, Any]:
    if not text:
        raise ExternalProviderFailure(provider, ValueError("empty response"))
    fenced = _FENCED_JSON.search(text)
    candidate = fenced.group(1) if fenced else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end < start:
        logger.error(f"No JSON object in {provider} response. Raw content: {text}")
        raise ExternalProviderFailure(provider, ValueError("no JSON object in response"))
    try:
        data = json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error in {provider} response: {e}")
        logger.error(f"Raw content: {text}")
        raise ExternalProviderFailure(provider, e) from e
    if not isinstance(data, dict):
        raise ExternalProviderFailure(provider, ValueError("response is not a JSON object"))
    return data
