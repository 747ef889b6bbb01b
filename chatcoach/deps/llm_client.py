"""
Chat completion client for any OpenAI-compatible endpoint
"""

import logging
from functools import lru_cache
from typing import List, Dict, Optional
from openai import OpenAI
from openai.types.chat import ChatCompletion
from openai import AuthenticationError as OpenAIAuthenticationError
from openai import APIError as OpenAIAPIError

from chatcoach.core.config import settings
from chatcoach.deps.exceptions import MissingAPIKeyError, InvalidAPIKeyError, LLMServiceError
from chatcoach.deps.utils import sanitize_secrets, format_messages_for_log

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Thin wrapper over the OpenAI SDK that normalizes errors and logging.

    The client is built once by the composition root and handed to services
    through ``get_llm_client`` so tests can substitute a fake.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ):
        self.api_key = (api_key or "").strip()
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        if not self.api_key:
            raise MissingAPIKeyError()
        if self._client is None:
            # No retries at this layer; callers see the first failure
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a role-tagged transcript and return the generated text.

        Args:
            messages: List of message dictionaries with 'role' and 'content' keys
            temperature: Overrides the configured sampling temperature
            max_tokens: Overrides the configured response length

        Returns:
            Content string from the assistant's response

        Raises:
            MissingAPIKeyError: If API key is missing
            InvalidAPIKeyError: If API key is invalid or authentication fails
            LLMServiceError: For other API errors, network issues or empty responses
        """
        client = self._get_client()
        logger.debug("LLM request (%d messages):\n%s", len(messages), format_messages_for_log(messages))

        try:
            response: ChatCompletion = client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=self.max_tokens if max_tokens is None else max_tokens,
                stream=False
            )
        except OpenAIAuthenticationError as e:
            error_msg = sanitize_secrets(str(e), self.api_key)
            logger.error(f"LLM authentication failed: {error_msg}")
            raise InvalidAPIKeyError() from e
        except OpenAIAPIError as e:
            error_msg = sanitize_secrets(str(e), self.api_key)
            logger.error(f"LLM API error: {error_msg}")
            raise LLMServiceError(f"LLM API error: {error_msg}") from e
        except Exception as e:
            error_msg = sanitize_secrets(str(e), self.api_key)
            logger.error(f"LLM request failed: {error_msg}")
            raise LLMServiceError(f"LLM request failed: {error_msg}") from e

        if not response.choices:
            raise LLMServiceError("No response content received from LLM API")

        content = response.choices[0].message.content or ""
        logger.debug("LLM response: %s", content)
        return content

    def complete(self, prompt: str) -> str:
        """Single user-turn completion"""
        return self.chat([{"role": "user", "content": prompt}])


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    """FastAPI dependency returning the process-wide client built from settings"""
    return LLMClient(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout_seconds,
    )
