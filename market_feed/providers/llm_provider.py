"""
LLM gateway client.
OpenAI-compatible chat completions, used for scenario generation and batch translation.
"""

import json
import re
from typing import Any, Dict, List, Optional
import httpx

from .base import BaseUpstreamAdapter, FetchResult, MalformedResponseError
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(content: str) -> Dict[str, Any]:
    """
    Pull the outermost JSON object out of a model reply.

    Models often wrap JSON in prose or markdown fences; everything between the
    first "{" and the last "}" is parsed.

    Raises:
        ValueError: If the reply holds no parseable JSON object
    """
    match = _JSON_OBJECT.search(content or '')
    if not match:
        raise ValueError("No JSON object in model reply")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model reply JSON is not an object")
    return data


class LLMGatewayClient(BaseUpstreamAdapter[str]):
    """Chat-completion client returning the first choice's message content."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(
            name="llm_gateway",
            api_key=api_key if api_key is not None else settings.llm_api_key,
            base_url=settings.llm_api_url,
            timeout=settings.llm_timeout,
            client=client
        )
        self.model = model or settings.llm_model

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        if not self.api_key:
            return None
        return {'Authorization': f'Bearer {self.api_key}'}

    async def _fetch(self, prompt: str, temperature: Optional[float] = None) -> str:
        self._require_api_key()

        payload = await self._make_request(
            method="POST",
            url=f"{self.base_url}/chat/completions",
            headers={'Content-Type': 'application/json'},
            json_body={
                'model': self.model,
                'messages': [{'role': 'user', 'content': prompt}],
                'temperature': settings.llm_temperature if temperature is None else temperature
            }
        )

        try:
            content = payload['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError):
            raise MalformedResponseError("Chat completion has no message content", self.name)

        if not isinstance(content, str) or not content.strip():
            raise MalformedResponseError("Chat completion content is empty", self.name)
        return content

    async def translate_batch(
        self,
        texts: List[str],
        target_language: Optional[str] = None
    ) -> FetchResult[Dict[str, str]]:
        """
        Translate a batch of strings.

        Returns a mapping from original text to translation. Strings the model
        skipped are simply absent from the mapping.
        """
        language = target_language or settings.translation_target_language
        prompt = (
            f"Translate each of the following calendar event names into {language}. "
            "Keep currency codes, coin tickers, numbers and proper nouns unchanged. "
            "Return only a JSON object whose keys are the original strings exactly as given "
            "and whose values are the translations.\n\n"
            f"{json.dumps(texts, ensure_ascii=False)}"
        )

        result = await self.fetch(prompt, temperature=0.1)
        if not result.ok:
            return FetchResult.failure(result.error)

        try:
            data = extract_json_object(result.value)
        except ValueError as e:
            logger.warning("Unparseable translation reply", extra={
                "provider": self.name,
                "error": str(e)
            })
            return FetchResult.failure(
                MalformedResponseError(f"Unparseable translation reply: {str(e)}", self.name)
            )

        wanted = set(texts)
        translations = {
            original: translated.strip()
            for original, translated in data.items()
            if original in wanted and isinstance(translated, str) and translated.strip()
        }

        logger.info("Translated event names", extra={
            "provider": self.name,
            "requested": len(texts),
            "translated": len(translations)
        })
        return FetchResult.success(translations)
