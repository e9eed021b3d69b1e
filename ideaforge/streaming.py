"""Streaming delivery of a single large completion.

:class:`StreamRelay` forwards fragments from :meth:`TextGenerationClient.stream`
to one consumer as UTF-8 bytes, in arrival order, holding at most one
fragment at a time.  It is pull-based: the next upstream fragment is only
requested once the consumer has taken the previous one.

State machine::

    IDLE -> REQUESTING -> RELAYING -> CLOSED
               |              |
               +--> FAILED <--+

A consumer can always tell a clean close from an aborted one: a clean close
ends iteration normally, an abort raises :class:`StreamAbortedError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from enum import Enum

from .errors import IdeaForgeError, StreamAbortedError, UpstreamUnavailableError
from .llm_client import GenerationOptions, Prompt, TextGenerationClient


class StreamState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    RELAYING = "relaying"
    CLOSED = "closed"
    FAILED = "failed"


class StreamRelay:
    """Relays one upstream text stream to one consumer.

    Attributes:
        state: Current :class:`StreamState`.
        fragments_relayed: Fragments handed to the consumer so far.
        error: The exception that moved the relay to ``FAILED``, if any.
        cancelled: ``True`` if the consumer stopped reading early.
    """

    def __init__(
        self,
        client: TextGenerationClient,
        prompt: Prompt,
        options: GenerationOptions | None = None,
    ) -> None:
        self.client = client
        self.prompt = prompt
        self.options = options or GenerationOptions()
        self.state = StreamState.IDLE
        self.fragments_relayed = 0
        self.error: BaseException | None = None
        self.cancelled = False
        self._upstream: AsyncIterator[str] | None = None
        self._pending: str | None = None
        self._consumed = False

    def _fail(self, exc: BaseException) -> None:
        self.state = StreamState.FAILED
        self.error = exc

    async def _close_upstream(self) -> None:
        if self._upstream is not None:
            aclose = getattr(self._upstream, "aclose", None)
            if aclose is not None:
                await aclose()
            self._upstream = None

    async def open(self) -> None:
        """Issue the upstream request and wait for its first fragment.

        Lets a caller detect failures that happen before any byte is relayed
        (bad credentials, unreachable service) while it can still answer with
        a proper error.

        Raises:
            UpstreamUnavailableError: If the request fails before the first
                fragment arrives.
        """
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"Cannot open a relay in state {self.state.value}")

        self.state = StreamState.REQUESTING
        self._upstream = self.client.stream(self.prompt, self.options).__aiter__()
        try:
            self._pending = await self._upstream.__anext__()
        except StopAsyncIteration:
            self._upstream = None
            self.state = StreamState.CLOSED
            return
        except IdeaForgeError as exc:
            self._fail(exc)
            await self._close_upstream()
            if isinstance(exc, UpstreamUnavailableError):
                raise
            raise UpstreamUnavailableError(str(exc)) from exc
        except Exception as exc:
            self._fail(exc)
            await self._close_upstream()
            raise UpstreamUnavailableError(f"Stream failed to start: {exc}") from exc

        self.state = StreamState.RELAYING

    async def relay(self) -> AsyncIterator[bytes]:
        """Yield each fragment as UTF-8 bytes, in arrival order.

        Opens the relay first if :meth:`open` has not been called.  A relay
        can be consumed once; relaying it again raises ``RuntimeError``.

        Raises:
            StreamAbortedError: If the upstream fails after relaying began.
            RuntimeError: If the relay was already consumed or has failed.
        """
        if self._consumed or self.state in (StreamState.REQUESTING, StreamState.FAILED):
            raise RuntimeError(f"Cannot relay a stream in state {self.state.value}")
        self._consumed = True

        if self.state is StreamState.IDLE:
            await self.open()

        try:
            while self.state is StreamState.RELAYING:
                if self._pending is not None:
                    fragment, self._pending = self._pending, None
                    self.fragments_relayed += 1
                    yield fragment.encode("utf-8")

                try:
                    self._pending = await self._upstream.__anext__()
                except StopAsyncIteration:
                    self._upstream = None
                    self.state = StreamState.CLOSED
                except Exception as exc:
                    self._fail(exc)
                    raise StreamAbortedError(
                        f"Upstream stream failed: {exc}", self.fragments_relayed
                    ) from exc
        except (GeneratorExit, asyncio.CancelledError):
            self.cancelled = True
            self._fail(StreamAbortedError("Consumer disconnected", self.fragments_relayed))
            raise
        finally:
            if self.state is not StreamState.CLOSED:
                await self._close_upstream()
