"""
Generation Client for Crucible.

Async client for an Ollama-compatible ``/api/chat`` endpoint:
- Random model choice from the configured pool per call
- Context-managed HTTP clients (a new one per attempt)
- Exponential backoff retry logic
- Token usage and cost extraction from heterogeneous payloads

Rules:
1. Never reuse HTTP clients across calls
2. A failure after all retries raises ModelInvocationError with the
   last underlying exception attached
3. Cancellation (e.g. a worker deadline) propagates immediately
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .pricing import estimate_cost

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class ModelInvocationError(Exception):
    """Exception raised when model invocation fails after retries."""

    def __init__(self, message: str, model: str = "", cause: Optional[Exception] = None):
        super().__init__(message)
        self.model = model
        self.cause = cause


@dataclass(frozen=True)
class GenerationResult:
    """Text and accounting for one generation call."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_s: float = 0.0


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_usage(payload: Dict[str, Any]) -> Tuple[int, int, Optional[float]]:
    """
    Pull token counts and a reported cost out of a response payload.

    Understands Ollama (``prompt_eval_count``/``eval_count``), OpenAI style
    (``usage.prompt_tokens``/``usage.completion_tokens``) and Anthropic
    style (``usage.input_tokens``/``usage.output_tokens``). A cost is read
    from ``cost.total_cost`` or ``usage.cost`` when present.

    Returns:
        (input_tokens, output_tokens, reported_cost or None)
    """
    if not isinstance(payload, dict):
        return 0, 0, None

    usage = payload.get("usage") if isinstance(payload.get("usage"), dict) else {}

    input_tokens = _as_int(
        usage.get("input_tokens", usage.get("prompt_tokens", payload.get("prompt_eval_count", 0)))
    )
    output_tokens = _as_int(
        usage.get("output_tokens", usage.get("completion_tokens", payload.get("eval_count", 0)))
    )

    reported_cost = None
    cost_block = payload.get("cost")
    if isinstance(cost_block, dict):
        reported_cost = _as_float(cost_block.get("total_cost"))
    elif cost_block is not None:
        reported_cost = _as_float(cost_block)
    if reported_cost is None and "cost" in usage:
        reported_cost = _as_float(usage.get("cost"))

    return input_tokens, output_tokens, reported_cost


def extract_text(payload: Dict[str, Any]) -> str:
    """Response text from an Ollama chat, Ollama generate or OpenAI payload."""
    message = payload.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(payload.get("response"), str):
        return payload["response"]
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0] or {}
        content = (first.get("message") or {}).get("content")
        if isinstance(content, str):
            return content
    return ""


class GenerationClient:
    """
    Chat client over a pool of models.

    Args:
        model_pool: Models to choose from (uniformly at random per call)
        base_url: Ollama-compatible server URL
        timeout: Per-request timeout in seconds
        max_retries: Attempts before giving up
        temperature: Sampling temperature
        rng: Random source for model choice
        backoff_base: Base delay in seconds for exponential backoff
    """

    def __init__(
        self,
        model_pool: List[str],
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = 120.0,
        max_retries: int = 2,
        temperature: float = 0.7,
        rng: Optional[random.Random] = None,
        backoff_base: float = 1.0,
    ):
        if not model_pool:
            raise ValueError("model_pool must name at least one model")
        self.model_pool = list(model_pool)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(max_retries, 1)
        self.temperature = temperature
        self.rng = rng or random.Random()
        self.backoff_base = backoff_base

    @classmethod
    def from_config(cls, config: Any, rng: Optional[random.Random] = None) -> "GenerationClient":
        return cls(
            model_pool=config.model_pool,
            base_url=config.ollama_base_url,
            timeout=config.generation_timeout_s,
            max_retries=config.generation_max_retries,
            temperature=config.temperature,
            rng=rng,
        )

    def choose_model(self) -> str:
        return self.rng.choice(self.model_pool)

    async def generate(
        self,
        role: str,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
    ) -> GenerationResult:
        """
        Run one chat completion.

        Args:
            role: Role name (for logging)
            messages: Chat messages ({"role", "content"})
            model: Force a model instead of drawing from the pool

        Returns:
            GenerationResult

        Raises:
            ModelInvocationError: If all retries fail
        """
        model = model or self.choose_model()
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature},
        }

        loop = asyncio.get_running_loop()
        started = loop.time()
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"[LLM] {role} -> {model} (attempt {attempt + 1}/{self.max_retries})")

                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(f"{self.base_url}/api/chat", json=payload)
                    response.raise_for_status()
                    data = response.json()

                text = extract_text(data)
                input_tokens, output_tokens, reported_cost = extract_usage(data)
                cost = (
                    reported_cost
                    if reported_cost is not None
                    else estimate_cost(model, input_tokens, output_tokens)
                )
                return GenerationResult(
                    text=text,
                    model=model,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    cost_usd=max(cost, 0.0),
                    duration_s=loop.time() - started,
                )

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(f"[LLM] Timeout calling {model} for {role} (attempt {attempt + 1}): {e}")

            except httpx.HTTPStatusError as e:
                last_error = e
                logger.warning(f"[LLM] HTTP error calling {model} for {role} (attempt {attempt + 1}): {e}")

            except httpx.RequestError as e:
                last_error = e
                logger.warning(f"[LLM] Request error calling {model} for {role} (attempt {attempt + 1}): {e}")

            except ValueError as e:
                last_error = e
                logger.warning(f"[LLM] Undecodable response from {model} for {role}: {e}")

            if attempt < self.max_retries - 1:
                backoff = self.backoff_base * (2 ** attempt)
                logger.info(f"[LLM] Retrying {role} in {backoff}s...")
                await asyncio.sleep(backoff)

        raise ModelInvocationError(
            f"Failed to call model {model} for {role} after {self.max_retries} attempts",
            model=model,
            cause=last_error,
        )
