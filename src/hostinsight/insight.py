"""Client for the Gemini ``generateContent`` endpoint."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import anyio
import httpx

from hostinsight.errors import (
    InsightError,
    RemoteStatusFailure,
    ResponseParseFailure,
    TransportFailure,
)
from hostinsight.log import logger
from hostinsight.models import InsightResult

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash"


def build_payload(prompt: str) -> dict[str, Any]:
    return {"contents": [{"parts": [{"text": prompt}]}]}


def extract_text(data: Any) -> str:
    """Pull ``candidates[0].content.parts[0].text`` out of a decoded response."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ResponseParseFailure("Text field not found in API response") from exc
    if not isinstance(text, str):
        raise ResponseParseFailure("Text field in API response is not a string")
    return text


class InsightClient:
    """
    Sends one prompt per request to the model and returns its text.

    Each request is a single attempt. The whole call, including reading the
    response, is bounded by ``deadline`` seconds.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        base_url: str | None = None,
        connect_timeout: float = 10.0,
        deadline: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("InsightClient requires an API key")
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.connect_timeout = connect_timeout
        self.deadline = deadline
        self._transport = transport
        self._executor: ThreadPoolExecutor | None = None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def request_text(self, prompt: str) -> str:
        """
        POST ``prompt`` and return the model's text.

        Raises:
            TransportFailure: Connection error or deadline exceeded.
            RemoteStatusFailure: Any status other than 200.
            ResponseParseFailure: Body is not JSON or lacks the text field.
        """
        timeout = httpx.Timeout(self.deadline, connect=self.connect_timeout)
        logger.info("Requesting insight from %s (%d chars)", self.model, len(prompt))
        try:
            with anyio.fail_after(self.deadline):
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    resp = await client.post(
                        self.endpoint,
                        params={"key": self.api_key},
                        json=build_payload(prompt),
                    )
        except TimeoutError as exc:
            logger.error("Insight request exceeded %.1fs deadline", self.deadline)
            raise TransportFailure(f"AI service did not answer within {self.deadline:.0f}s") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("Error calling AI service: %s", exc)
            raise TransportFailure(f"Error calling AI service: {exc}") from exc

        if resp.status_code != 200:
            logger.error("Non-200 response from API: status=%d, body=%s", resp.status_code, resp.text)
            raise RemoteStatusFailure(resp.status_code, resp.text)

        logger.debug("Raw API response: %s", resp.text)
        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("API response is not JSON: %s", resp.text)
            raise ResponseParseFailure(f"Could not parse AI response: {exc}") from exc

        try:
            return extract_text(data)
        except ResponseParseFailure:
            logger.error("Text field not found in API response: %s", resp.text)
            raise

    async def aexplain(self, prompt: str) -> InsightResult:
        """Like ``request_text`` but reports failures in the result instead of raising."""
        try:
            return InsightResult(text=await self.request_text(prompt))
        except InsightError as exc:
            return InsightResult(error=exc)

    def explain(
        self,
        prompt: str,
        on_insight: Callable[[InsightResult], None] | None = None,
    ) -> Future[InsightResult]:
        """
        Run the request on the client's worker thread.

        ``on_insight`` is called on that thread once the result is known.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="InsightClient")
        return self._executor.submit(self._run, prompt, on_insight)

    def _run(self, prompt: str, on_insight: Callable[[InsightResult], None] | None) -> InsightResult:
        try:
            result = anyio.run(self.aexplain, prompt)
        except Exception as exc:
            logger.exception("Insight request failed unexpectedly")
            result = InsightResult(error=InsightError(f"Unexpected error calling AI service: {exc}"))
        if on_insight is not None:
            try:
                on_insight(result)
            except Exception:
                logger.exception("Insight consumer raised")
        return result

    def close(self) -> None:
        """Stop the worker thread; an outstanding request still runs to completion."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
