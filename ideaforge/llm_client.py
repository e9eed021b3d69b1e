"""Async client for an OpenAI-compatible chat-completions API.

Wraps ``POST /chat/completions`` (blocking and server-sent-event streaming) and
``GET /models`` with proper timeout handling and structured responses. All
methods are async so they integrate cleanly with the orchestrator and the HTTP
service.

Typical usage::

    client = TextGenerationClient(api_key="sk-...")
    resp = await client.generate(Prompt(system="You are terse.", user="Say hi"))
    print(resp.text)

    async for fragment in client.stream(prompt, GenerationOptions(max_tokens=512)):
        print(fragment, end="")
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator

import httpx
from pydantic import BaseModel, Field

from .errors import MalformedResponseError, UpstreamUnavailableError

_STREAM_DONE = "[DONE]"


class Prompt(BaseModel):
    """A two-role prompt: instructions for the system, content from the user."""

    system: str = Field(default="", description="System role message")
    user: str = Field(..., description="User role message")


class GenerationOptions(BaseModel):
    """Sampling parameters for a single call."""

    model: str = Field(default="gpt-4o")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    json_mode: bool = Field(default=False, description="Ask for a single JSON object")
    max_tokens: int | None = Field(default=None, ge=1)


class GenerationResponse(BaseModel):
    """Structured response from a generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    duration_ms: float = Field(default=0.0, description="Client-side round-trip time in ms")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")


class TextGenerationClient:
    """Async client for a chat-completions endpoint.

    The client uses ``httpx.AsyncClient`` for non-blocking HTTP. A ``generate``
    call is bounded by ``timeout`` seconds in total, on top of httpx's own
    connect and read timeouts. A ``stream`` has no total cap because long
    completions run for minutes; instead every read is bounded by ``timeout``
    seconds, so a stalled upstream fails rather than hanging the caller.
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        kwargs: dict = {
            "base_url": self.base_url,
            "timeout": httpx.Timeout(self.timeout, connect=10.0),
            "headers": headers,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    @staticmethod
    def _build_payload(prompt: Prompt, options: GenerationOptions, stream: bool) -> dict:
        messages = []
        if prompt.system:
            messages.append({"role": "system", "content": prompt.system})
        messages.append({"role": "user", "content": prompt.user})

        payload: dict = {
            "model": options.model,
            "messages": messages,
            "temperature": options.temperature,
            "stream": stream,
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}
        if options.max_tokens is not None:
            payload["max_completion_tokens"] = options.max_tokens
        return payload

    @staticmethod
    def _extract_text(data: dict) -> str | None:
        """Pull the message content out of a chat-completions response.

        Returns ``None`` when the response carries no content at all, which is
        distinct from an empty string.
        """
        choices = data.get("choices") or []
        if not choices:
            return None
        message = choices[0].get("message") or {}
        return message.get("content")

    @staticmethod
    def _parse_stream_line(line: str) -> str | None:
        """Decode one server-sent-event line into a text fragment.

        Returns ``None`` for lines that carry no text (blank keep-alives,
        comments, role-only deltas) and ``_STREAM_DONE`` for the terminator.

        Raises:
            MalformedResponseError: If a ``data:`` line is not valid JSON.
        """
        line = line.strip()
        if not line or line.startswith(":") or not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if data == _STREAM_DONE:
            return _STREAM_DONE
        try:
            event = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(f"Undecodable stream event: {data[:200]}") from exc
        choices = event.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        return delta.get("content") or None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: Prompt,
        options: GenerationOptions | None = None,
    ) -> GenerationResponse:
        """Generate a complete text response.

        Args:
            prompt: System and user messages.
            options: Sampling parameters; defaults to ``GenerationOptions()``.

        Returns:
            A ``GenerationResponse`` with the generated text or an error.
        """
        options = options or GenerationOptions()
        payload = self._build_payload(prompt, options, stream=False)
        started = time.monotonic()

        async def _post() -> dict:
            async with self._client() as client:
                response = await client.post("/chat/completions", json=payload)
                response.raise_for_status()
                return response.json()

        try:
            data = await asyncio.wait_for(_post(), timeout=self.timeout)
        except httpx.ConnectError:
            return GenerationResponse(
                model=options.model,
                success=False,
                error=f"Cannot connect to the generation service at {self.base_url}.",
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return GenerationResponse(
                model=options.model,
                success=False,
                error=f"Request to the generation service timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return GenerationResponse(
                model=options.model,
                success=False,
                error=(
                    f"Generation service returned HTTP {exc.response.status_code}: "
                    f"{exc.response.text[:500]}"
                ),
            )
        except Exception as exc:  # noqa: BLE001
            return GenerationResponse(
                model=options.model,
                success=False,
                error=f"Unexpected error during generate: {exc}",
            )

        duration_ms = (time.monotonic() - started) * 1000.0
        text = self._extract_text(data) if isinstance(data, dict) else None
        if text is None:
            return GenerationResponse(
                model=options.model,
                duration_ms=duration_ms,
                success=False,
                error="Generation service returned no content.",
            )
        return GenerationResponse(
            text=text,
            model=data.get("model", options.model),
            duration_ms=duration_ms,
            success=True,
        )

    async def stream(
        self,
        prompt: Prompt,
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        """Yield text fragments as the service produces them.

        Fragments are yielded in arrival order. Closing the iterator early
        (``aclose()``) closes the underlying HTTP response.

        Raises:
            UpstreamUnavailableError: On connect errors, timeouts, or a
                non-success status.
            MalformedResponseError: If an event cannot be decoded.
        """
        options = options or GenerationOptions()
        payload = self._build_payload(prompt, options, stream=True)

        try:
            async with self._client() as client:
                async with client.stream("POST", "/chat/completions", json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise UpstreamUnavailableError(
                            f"Generation service returned HTTP {response.status_code}: {body[:500]}"
                        )
                    async for line in response.aiter_lines():
                        fragment = self._parse_stream_line(line)
                        if fragment == _STREAM_DONE:
                            return
                        if fragment:
                            yield fragment
        except httpx.ConnectError as exc:
            raise UpstreamUnavailableError(
                f"Cannot connect to the generation service at {self.base_url}."
            ) from exc
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError(
                f"Stream from the generation service timed out after {self.timeout}s."
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Stream transport error: {exc}") from exc

    async def is_available(self) -> bool:
        """Return ``True`` if the service responds to ``GET /models``."""
        try:
            async with self._client() as client:
                response = await client.get("/models")
                return response.status_code == 200
        except Exception:  # noqa: BLE001
            return False
