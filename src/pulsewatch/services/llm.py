import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

logger = logging.getLogger(__name__)

# Failures worth another attempt; anything else is raised straight away
RETRYABLE_ERRORS = (asyncio.TimeoutError, httpx.TransportError, ConnectionError)


class LLMError(RuntimeError):
    """The model could not produce a response after all attempts."""


class OllamaClient:
    """
    JSON-mode chat client for the extraction rules.

    Connection problems and timeouts are retried with a linear backoff;
    the final failure is raised as LLMError so callers can treat every
    transport problem the same way.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.1,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 120.0,
        num_ctx: int = 4096,
    ):
        # ChatOllama talks to the native API, not the OpenAI-compatible /v1 one
        self.base_url = base_url.rstrip("/").removesuffix("/v1")
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_ctx=num_ctx,
            format="json",
        )

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        if isinstance(error, RETRYABLE_ERRORS):
            return True
        # ollama's client wraps refused connections in a plain exception
        return "connect" in str(error).lower()

    async def _invoke_with_retry(self, messages: List[BaseMessage]) -> Any:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
            except Exception as e:
                if not self._is_retryable(e):
                    raise LLMError(f"{self.model} request failed: {e}") from e
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} to {self.base_url} ({self.model}) failed: "
                    f"{type(e).__name__} {e}"
                )

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        raise LLMError(f"{self.model} unreachable after {self.max_retries} attempts") from last_error

    async def evaluate(self, prompt: str, system: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a prompt (with an optional system message).
        Returns {"raw", "content", "latency_ms"}.
        """
        start = time.perf_counter()

        messages: List[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        response = await self._invoke_with_retry(messages)

        return {
            "raw": response,
            "content": response.content,
            "latency_ms": int((time.perf_counter() - start) * 1000),
        }

    async def health_check(self) -> bool:
        """
        Check if the Ollama server is reachable by calling /api/tags.
        """
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False

        if resp.status_code != 200:
            logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
            return False
        return True
