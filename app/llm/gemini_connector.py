import logging
import os

from google import genai
from google.genai import errors, types

from app.core.exceptions import ExternalProviderFailure
from app.llm.llm_connector import LLMConnector

logger = logging.getLogger(__name__)


class GeminiConnector(LLMConnector):
    provider_name = "gemini"

    def __init__(self):
        api_key = os.environ.get("GEMINI_API_KEY")
        if not api_key:
            logger.error("GEMINI_API_KEY environment variable not set.")
            raise ValueError("GEMINI_API_KEY environment variable not set.")

        self.model_name = os.environ.get("GEMINI_API_MODEL") or "gemini-flash-latest"
        self.client = genai.Client(api_key=api_key)
        self.default_safety_settings = [
            types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_NONE"),
            types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_NONE"),
            types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_NONE"),
            types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_NONE"),
        ]

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        contents = [types.Content(role="user", parts=[types.Part.from_text(text=user_prompt or "Please proceed.")])]

        generation_config = types.GenerateContentConfig(
            system_instruction=[types.Part.from_text(text=system_prompt)],
            temperature=temperature,
            max_output_tokens=max_tokens,
            response_mime_type="application/json" if json_mode else None,
            safety_settings=self.default_safety_settings,
        )

        try:
            response = self.client.models.generate_content(
                model=self.model_name, contents=contents, config=generation_config
            )
        except errors.APIError as e:
            logger.error(f"Gemini completion failed: {e}", exc_info=True)
            raise ExternalProviderFailure(self.provider_name, e) from e
        except Exception as e:
            # Transport errors (httpx, timeouts) are not wrapped by the SDK
            logger.error(f"Gemini request failed: {e}", exc_info=True)
            raise ExternalProviderFailure(self.provider_name, e) from e

        if not response.text:
            raise ExternalProviderFailure(
                self.provider_name, ValueError("Gemini returned empty response (blocked or error).")
            )
        return response.text
