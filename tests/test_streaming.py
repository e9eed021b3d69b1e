"""Unit tests for the streaming relay (ideaforge.streaming).

Tests cover:
- Clean relay: fragments in order, CLOSED state, fragment count
- Empty upstream
- Failure before the first fragment (open) and mid-stream (relay)
- Consumer disconnect closes the upstream
- A relay is consumed once
"""

from __future__ import annotations

import pytest

from ideaforge.errors import StreamAbortedError, UpstreamUnavailableError
from ideaforge.llm_client import GenerationOptions, Prompt
from ideaforge.streaming import StreamRelay, StreamState

PROMPT = Prompt(user="Generate complete code")


async def _collect(relay: StreamRelay) -> list[bytes]:
    return [chunk async for chunk in relay.relay()]


class TestCleanRelay:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fragments_in_order(self, make_client):
        client = make_client(fragments=["a", "b", "c"])
        relay = StreamRelay(client, PROMPT)

        assert relay.state is StreamState.IDLE
        assert await _collect(relay) == [b"a", b"b", b"c"]
        assert relay.state is StreamState.CLOSED
        assert relay.fragments_relayed == 3
        assert relay.error is None
        assert relay.cancelled is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_utf8_encoding(self, make_client):
        relay = StreamRelay(make_client(fragments=["├── ", "src"]), PROMPT)
        assert b"".join(await _collect(relay)).decode("utf-8") == "├── src"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_then_relay(self, make_client):
        client = make_client(fragments=["x", "y"])
        relay = StreamRelay(client, PROMPT, GenerationOptions(max_tokens=16384))

        await relay.open()
        assert relay.state is StreamState.RELAYING
        assert relay.fragments_relayed == 0
        assert await _collect(relay) == [b"x", b"y"]
        assert client.stream_calls[0][1].max_tokens == 16384

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_upstream_closes(self, make_client):
        relay = StreamRelay(make_client(fragments=[]), PROMPT)
        await relay.open()
        assert relay.state is StreamState.CLOSED
        assert await _collect(relay) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cannot_open_twice(self, make_client):
        relay = StreamRelay(make_client(fragments=["a"]), PROMPT)
        await relay.open()
        with pytest.raises(RuntimeError):
            await relay.open()


class TestFailures:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_error_after_b_aborts(self, make_client):
        client = make_client(fragments=["a", "b"], stream_error=RuntimeError("connection reset"))
        relay = StreamRelay(client, PROMPT)

        received: list[bytes] = []
        with pytest.raises(StreamAbortedError) as exc_info:
            async for chunk in relay.relay():
                received.append(chunk)

        assert received == [b"a", b"b"]
        assert relay.state is StreamState.FAILED
        assert exc_info.value.fragments_relayed == 2
        assert "after 2 fragment(s)" in str(exc_info.value)
        assert isinstance(relay.error, RuntimeError)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_before_first_fragment(self, make_client):
        client = make_client(stream_error=UpstreamUnavailableError("HTTP 401"))
        relay = StreamRelay(client, PROMPT)

        with pytest.raises(UpstreamUnavailableError, match="HTTP 401"):
            await relay.open()
        assert relay.state is StreamState.FAILED
        assert relay.fragments_relayed == 0
        assert client.stream_closed is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_error_before_first_fragment(self, make_client):
        relay = StreamRelay(make_client(stream_error=ValueError("bad")), PROMPT)
        with pytest.raises(UpstreamUnavailableError, match="Stream failed to start"):
            await relay.open()
        assert relay.state is StreamState.FAILED


class TestConsumerDisconnect:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_aclose_stops_upstream(self, make_client):
        client = make_client(fragments=["a", "b", "c", "d"])
        relay = StreamRelay(client, PROMPT)

        chunks = relay.relay()
        assert await chunks.__anext__() == b"a"
        await chunks.aclose()

        assert relay.cancelled is True
        assert relay.state is StreamState.FAILED
        assert relay.fragments_relayed == 1
        assert client.stream_closed is True


class TestSingleUse:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_relay_again_after_close_raises(self, make_client):
        relay = StreamRelay(make_client(fragments=["a", "b"]), PROMPT)
        assert await _collect(relay) == [b"a", b"b"]

        with pytest.raises(RuntimeError, match="state closed"):
            await _collect(relay)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_relay_again_after_abort_raises(self, make_client):
        client = make_client(fragments=["a", "b"], stream_error=RuntimeError("connection reset"))
        relay = StreamRelay(client, PROMPT)
        with pytest.raises(StreamAbortedError):
            await _collect(relay)

        with pytest.raises(RuntimeError, match="state failed"):
            await _collect(relay)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_relay_after_failed_open_raises(self, make_client):
        relay = StreamRelay(make_client(stream_error=UpstreamUnavailableError("HTTP 401")), PROMPT)
        with pytest.raises(UpstreamUnavailableError):
            await relay.open()

        with pytest.raises(RuntimeError, match="state failed"):
            await _collect(relay)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_stream_relays_once(self, make_client):
        relay = StreamRelay(make_client(fragments=[]), PROMPT)
        await relay.open()
        assert await _collect(relay) == []

        with pytest.raises(RuntimeError):
            await _collect(relay)
