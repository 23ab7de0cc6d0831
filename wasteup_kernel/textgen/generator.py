"""
Text generation collaborator — short contextual copy from a generative model.

The collaborator is unreliable by nature (rate limits, outages, slow replies).
Callers never depend on it: TimeBoundGenerator caps every call with a timeout
and reports failure as None so the caller can use its static fallback.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Dict, Optional, Protocol

import requests

logger = logging.getLogger(__name__)


class TextGenerationError(Exception):
    """Raised when the collaborator cannot produce text."""
    pass


class TextGenerator(Protocol):
    """Protocol for text generation — pluggable backend."""

    def generate(self, prompt_kind: str, context: dict) -> str: ...


class OfflineTextGenerator:
    """Generator used when no model is configured. Always defers to fallbacks."""

    def generate(self, prompt_kind: str, context: dict) -> str:
        raise TextGenerationError("No text generation backend configured")


# prompt kind -> (instruction, temperature)
PROMPTS: Dict[str, tuple] = {
    "PICKUP_CONFIRMATION": (
        "Write a short, warm confirmation (max 200 chars) that a waste pickup "
        "request was received.", 0.5,
    ),
    "NEW_JOB_ALERT": (
        "Write a short alert (max 140 chars) telling a waste collection operator "
        "a new pickup job was assigned to them.", 0.4,
    ),
    "STATUS_UPDATE": (
        "Generate a short, professional SMS notification (max 140 chars) about a "
        "pickup status change.", 0.5,
    ),
    "DRIVER_EN_ROUTE": (
        "Generate a short SMS (max 140 chars) telling a resident the collection "
        "driver is en route.", 0.5,
    ),
    "PICKUP_COMPLETED": (
        "Generate a short SMS (max 140 chars) thanking a resident after their "
        "waste pickup was completed.", 0.5,
    ),
    "REMINDER": (
        "Generate a short SMS reminder (max 140 chars) about an upcoming "
        "waste pickup.", 0.5,
    ),
    "WASTE_TIP": (
        "Provide 1 short, actionable tip for residents in Ibadan, Nigeria to "
        "better manage this kind of waste to prevent drainage blockage and "
        "flooding. Keep it friendly and localized. (Limit: 30 words)", 0.7,
    ),
    "ROUTE_ADVICE": (
        "Suggest an efficient waste collection route for the numbered locations "
        "in Ibadan, Nigeria, considering traffic around Challenge, Dugbe and "
        "Iwo Road. Reply with JSON only: {\"optimized_order\": [indices], "
        "\"justification\": \"short reason\"}.", 0.3,
    ),
}


def build_prompt(prompt_kind: str, context: dict, brand_name: str = "Waste Up Ibadan") -> str:
    instruction, _ = PROMPTS.get(prompt_kind, ("Write a short notification.", 0.5))
    return (
        f"{instruction}\n"
        f"App: {brand_name}. Context: {prompt_kind}. "
        f"Details: {json.dumps(context, sort_keys=True, default=str)}. "
        f"Include '{brand_name}' where it reads naturally."
    )


class GeminiTextGenerator:
    """Google Gemini backend over the public generateContent REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        endpoint: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 3.0,
        brand_name: str = "Waste Up Ibadan",
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.brand_name = brand_name
        self._session = session or requests.Session()

    def generate(self, prompt_kind: str, context: dict) -> str:
        _, temperature = PROMPTS.get(prompt_kind, ("", 0.5))
        payload = {
            "contents": [
                {"parts": [{"text": build_prompt(prompt_kind, context, self.brand_name)}]}
            ],
            "generationConfig": {"temperature": temperature},
        }
        try:
            response = self._session.post(
                f"{self.endpoint}/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise TextGenerationError(f"Gemini request failed: {e}") from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise TextGenerationError("Gemini returned no text") from e
        return text.strip()


class TimeBoundGenerator:
    """
    Wraps a TextGenerator so no call outlives timeout_seconds.

    A call that times out keeps running on its worker thread, but its result
    is discarded; the caller has already moved on to the fallback.
    """

    def __init__(
        self,
        generator: TextGenerator,
        timeout_seconds: float = 3.0,
        max_workers: int = 4,
    ):
        self.generator = generator
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="textgen"
        )

    def generate_or_none(self, prompt_kind: str, context: dict) -> Optional[str]:
        """Generated text, or None on failure, timeout, or empty output."""
        future = self._executor.submit(self.generator.generate, prompt_kind, context)
        try:
            text = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Text generation for %s timed out after %.1fs; using fallback",
                prompt_kind, self.timeout_seconds,
            )
            return None
        except Exception as e:
            logger.warning(
                "Text generation for %s failed (%s); using fallback", prompt_kind, e
            )
            return None

        if not isinstance(text, str) or not text.strip():
            logger.warning("Text generation for %s was empty; using fallback", prompt_kind)
            return None
        return text.strip()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


def create_generator(
    api_key: Optional[str],
    model: str,
    endpoint: str,
    timeout_seconds: float,
    brand_name: str,
) -> TextGenerator:
    """Gemini when a key is configured, otherwise the offline generator."""
    if api_key:
        return GeminiTextGenerator(
            api_key=api_key,
            model=model,
            endpoint=endpoint,
            timeout_seconds=timeout_seconds,
            brand_name=brand_name,
        )
    return OfflineTextGenerator()
