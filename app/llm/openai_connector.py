import logging
import os

import openai

from app.core.exceptions import ExternalProviderFailure
from app.llm.llm_connector import LLMConnector

logger = logging.getLogger(__name__)


class OpenAIConnector(LLMConnector):
    """
    Any OpenAI-compatible chat completions endpoint (OpenAI, llama.cpp, vLLM...).
    Reference : https://deepwiki.com/openai/openai-python/4.1-chat-completions-api
    """

    provider_name = "openai"

    def __init__(self):
        self.base_url = os.environ.get("OPENAI_API_BASE_URL")
        self.api_key = os.environ.get("OPENAI_API_KEY")
        self.model = os.environ.get("OPENAI_API_MODEL")
        if not self.base_url:
            logger.error("OPENAI_API_BASE_URL environment variable not set.")
            raise ValueError("OPENAI_API_BASE_URL environment variable not set.")
        if not self.api_key:
            logger.error("OPENAI_API_KEY environment variable not set.")
            raise ValueError("OPENAI_API_KEY environment variable not set.")
        if not self.model:
            logger.error("OPENAI_API_MODEL environment variable not set.")
            raise ValueError("OPENAI_API_MODEL environment variable not set.")
        self.client = openai.OpenAI(base_url=self.base_url, api_key=self.api_key)

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                **kwargs,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI completion failed: {e}", exc_info=True)
            raise ExternalProviderFailure(self.provider_name, e) from e
        except Exception as e:
            logger.error(f"OpenAI request failed: {e}", exc_info=True)
            raise ExternalProviderFailure(self.provider_name, e) from e

        if not resp.choices:
            raise ExternalProviderFailure(self.provider_name, ValueError("no choices returned"))
        return resp.choices[0].message.content or ""
