import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from summary_reader.core.config import SummarizationConfig
from summary_reader.core.errors import SummarizationError

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    google_exceptions.ResourceExhausted,   # 429
    google_exceptions.DeadlineExceeded,    # timeout
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
)

_BACKOFF_SECONDS = 1.0


def estimate_tokens(text: str) -> int:
    """Rough approximation: 1 token ~ 4 characters."""
    return math.ceil(len(text) / 4)


class SummaryService:
    """Service for summarizing chapter text with Gemini at a target compression ratio."""

    def __init__(self, config: SummarizationConfig, model_factory: Optional[Callable[..., Any]] = None):
        if not config.api_key:
            raise ValueError("GOOGLE_API_KEY environment variable is not set")
        genai.configure(api_key=config.api_key)
        self.config = config
        self._model_factory = model_factory or genai.GenerativeModel
        self._sleep = time.sleep

    def build_system_prompt(
        self,
        original_tokens: int,
        target_tokens: int,
        ratio: float,
        custom_prompt: Optional[str] = None,
        language: Optional[str] = None
    ) -> str:
        prompt = custom_prompt or self.config.prompt
        prompt += (
            f"\n\nPlease summarize the following content to approximately {target_tokens} tokens "
            f"(current content is {original_tokens} tokens, target ratio: {ratio})."
        )
        if language:
            prompt += f" Provide requested summary in {language} language."
        return prompt

    def summarize(
        self,
        content: str,
        ratio: float,
        images: Optional[List[Dict[str, Any]]] = None,
        custom_prompt: Optional[str] = None,
        language: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Summarize `content` down to roughly `ratio` of its size.

        Args:
            content: Plain text to summarize
            ratio: Target size relative to the original, in (0, 1]
            images: Optional inline image parts ({"mime_type": ..., "data": bytes})
            custom_prompt: Replaces the configured system prompt
            language: Language the summary should be written in

        Returns:
            Dict with summary, originalTokens, summaryTokens and actualRatio
        """
        original_tokens = estimate_tokens(content)
        target_tokens = math.ceil(original_tokens * ratio)

        system_prompt = self.build_system_prompt(
            original_tokens=original_tokens,
            target_tokens=target_tokens,
            ratio=ratio,
            custom_prompt=custom_prompt,
            language=language
        )

        contents: List[Any] = [content]
        if images:
            contents.append("Please also consider these images in your summary:")
            contents.extend(images)

        model = self._model_factory(self.config.model_name, system_instruction=system_prompt)
        generation_config = genai.GenerationConfig(
            max_output_tokens=max(target_tokens * 2, 100),
            temperature=0.7,
        )

        summary = self._generate_with_retry(model, contents, generation_config)
        summary_tokens = estimate_tokens(summary)

        return {
            "summary": summary,
            "originalTokens": original_tokens,
            "summaryTokens": summary_tokens,
            "actualRatio": summary_tokens / original_tokens if original_tokens else 0.0,
        }

    def _generate_with_retry(self, model, contents, generation_config) -> str:
        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            try:
                response = model.generate_content(contents, generation_config=generation_config)
                return response.text or ""
            except _RETRYABLE_ERRORS as e:
                if attempt == attempts - 1:
                    logger.error("Gemini error after %d attempts: %s", attempts, e)
                    raise SummarizationError("Failed to generate summary") from e
                delay = _BACKOFF_SECONDS * (2 ** attempt)
                logger.warning("Gemini error retryable (attempt %d/%d), retrying in %.1fs: %s",
                               attempt + 1, attempts, delay, e)
                self._sleep(delay)
            except Exception as e:
                logger.error("AI summarization error: %s", e)
                raise SummarizationError("Failed to generate summary") from e
        raise SummarizationError("Failed to generate summary")

    def list_models(self) -> List[Dict[str, str]]:
        """Models usable for summarization."""
        models = []
        for model in genai.list_models():
            if "generateContent" not in (model.supported_generation_methods or []):
                continue
            models.append({
                "name": model.name,
                "alias": model.display_name or model.name,
                "hostedBy": "google",
            })
        return models
