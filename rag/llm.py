"""LLM client for answer generation, supporting OpenAI and Anthropic.

Provider errors are translated into GenerationError subclasses so the
orchestration layer can tell auth problems from overload and outages.
"""

import logging
import time
from typing import Any, Callable, Optional

import anthropic
import openai
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from rag.errors import (
    AuthenticationFailedError,
    ConfigurationError,
    ErrorCategory,
    GenerationError,
    ServiceOverloadedError,
)

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-6",
}
DEFAULT_TIMEOUT_S = 60.0
MAX_RETRIES = 2
RETRY_BASE_DELAY_S = 1.0
MAX_RETRY_DELAY_S = 10.0


def classify_error(exc: Exception) -> GenerationError:
    """Map a provider SDK exception onto the generation error taxonomy."""
    if isinstance(exc, GenerationError):
        return exc

    status = getattr(exc, "status_code", None)
    if isinstance(exc, (openai.APITimeoutError, anthropic.APITimeoutError)):
        return GenerationError(f"Generation timed out: {exc}", ErrorCategory.TIMEOUT)
    if isinstance(exc, (openai.AuthenticationError, anthropic.AuthenticationError)) or status in (401, 403):
        return AuthenticationFailedError(f"Authentication failed: {exc}", status_code=status or 401)
    # 529 is Anthropic's "overloaded" status
    if isinstance(exc, (openai.RateLimitError, anthropic.RateLimitError)) or status in (429, 529):
        return ServiceOverloadedError(f"Service overloaded or rate limited: {exc}", status_code=status or 429)
    if isinstance(status, int) and status >= 500:
        return GenerationError(f"Provider error ({status}): {exc}", ErrorCategory.SERVER, status)
    if isinstance(exc, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return GenerationError(f"Could not reach the provider: {exc}", ErrorCategory.SERVER)
    return GenerationError(f"Generation failed: {exc}", ErrorCategory.UNKNOWN, status)


def is_retryable(exc: BaseException) -> bool:
    """Overload and 5xx failures are worth another attempt; auth and timeouts are not."""
    return isinstance(exc, GenerationError) and exc.category in (ErrorCategory.RATE_LIMIT, ErrorCategory.SERVER)


class LLMClient:
    """Single-prompt text generation over either provider.

    Rate-limited and server-side failures are retried here, with backoff,
    rather than inside the provider SDK, so `on_retry` sees every retry.
    """

    def __init__(
        self,
        provider: str = "openai",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        client: Optional[Any] = None,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[Callable[[str], None]] = None,
    ):
        if provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {provider}")
        self.provider = provider
        self.model = model or DEFAULT_MODELS[provider]
        self.max_retries = max_retries
        self.sleep = sleep
        self.on_retry = on_retry

        if client is not None:
            self.client = client
        elif not api_key:
            raise ConfigurationError(f"An API key for provider '{provider}' is required")
        elif provider == "anthropic":
            self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        else:
            self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def _before_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Generation attempt %d/%d failed (%s), retrying in %.1fs",
            retry_state.attempt_number,
            self.max_retries + 1,
            error,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )
        if self.on_retry is not None:
            self.on_retry(f"generation: {error}")

    def generate(self, prompt: str, temperature: float = 0.2, max_tokens: int = 2048) -> str:
        """Send the whole prompt as one user message and return the reply text."""
        logger.info("Generating with %s/%s (%d prompt chars)", self.provider, self.model, len(prompt))
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=RETRY_BASE_DELAY_S, max=MAX_RETRY_DELAY_S),
            retry=retry_if_exception(is_retryable),
            reraise=True,
            sleep=self.sleep,
            before_sleep=self._before_retry,
        )
        try:
            for attempt in retrying:
                with attempt:
                    text = self._complete(prompt, temperature, max_tokens)
        except GenerationError as e:
            logger.error("Generation failed (%s): %s", e.category.value, e)
            raise
        return text.strip()

    def _complete(self, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            if self.provider == "anthropic":
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    messages=[{"role": "user", "content": prompt}],
                )
                return "".join(
                    block.text for block in response.content if getattr(block, "type", "text") == "text"
                )
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            raise classify_error(e) from e
