import asyncio
import unittest

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from dojo.client.errors import StreamInterrupted, TransportBusy, TransportError
from dojo.client.transport import TurnTransport
from dojo.models.session import SessionConfig, TranscriptEntry

CONFIG = SessionConfig(role="frontend", difficulty=3)


class TurnTransportServerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[dict] = []
        self.headers: list[dict] = []
        self.status = 200
        self.chunks = [b"Good st", b"art|||Can you ", b"quantify the impact?"]
        self.pause = 0.0
        app = web.Application()
        app.router.add_post("/api/chat", self._chat)
        self.server = TestServer(app)
        await self.server.start_server()
        self.http = aiohttp.ClientSession()
        self.transport = TurnTransport(str(self.server.make_url("/")), session=self.http, user_id="user-1")

    async def asyncTearDown(self) -> None:
        await self.http.close()
        await self.server.close()

    async def _chat(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(await request.json())
        self.headers.append(dict(request.headers))
        if self.status != 200:
            return web.Response(status=self.status, text="model overloaded")
        response = web.StreamResponse(headers={"Content-Type": "text/plain; charset=utf-8"})
        await response.prepare(request)
        for index, chunk in enumerate(self.chunks):
            if index and self.pause:
                await asyncio.sleep(self.pause)
            await response.write(chunk)
        await response.write_eof()
        return response

    async def test_streams_fragments_and_sends_wire_payload(self) -> None:
        transcript = [
            TranscriptEntry(role="assistant", content="Tell me about a bug."),
            TranscriptEntry(role="user", content="A race in the cache."),
        ]
        stream = await self.transport.send(transcript, CONFIG)
        text = "".join([fragment async for fragment in stream])

        self.assertEqual(text, "Good start|||Can you quantify the impact?")
        self.assertEqual(
            self.requests[0],
            {
                "messages": [
                    {"role": "assistant", "content": "Tell me about a bug."},
                    {"role": "user", "content": "A race in the cache."},
                ],
                "user_role": "frontend",
                "is_grill_mode": False,
                "intensity": 3,
                "persona": "technologist",
            },
        )
        self.assertEqual(self.headers[0].get("X-User-Id"), "user-1")
        self.assertFalse(self.transport.busy)

    async def test_multibyte_characters_split_across_chunks(self) -> None:
        self.chunks = [b"caf\xc3", b"\xa9 ||| ok"]
        stream = await self.transport.send([], CONFIG)
        text = "".join([fragment async for fragment in stream])
        self.assertEqual(text, "café ||| ok")

    async def test_refuses_overlapping_calls(self) -> None:
        stream = await self.transport.send([], CONFIG)
        self.assertTrue(self.transport.busy)
        with self.assertRaises(TransportBusy):
            await self.transport.send([], CONFIG)
        await stream.aclose()
        self.assertFalse(self.transport.busy)
        self.assertEqual(len(self.requests), 1)

    async def test_error_status_is_transport_error(self) -> None:
        self.status = 500
        with self.assertRaises(TransportError) as ctx:
            await self.transport.send([], CONFIG)
        self.assertEqual(ctx.exception.status, 500)
        self.assertFalse(self.transport.busy)

    async def test_slow_stream_outlives_shared_session_timeout(self) -> None:
        self.chunks = [b"Hint ||| Partial", b" answer"]
        self.pause = 0.6
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=0.3)) as http:
            transport = TurnTransport(str(self.server.make_url("/")), session=http)
            stream = await transport.send([], CONFIG)
            text = "".join([fragment async for fragment in stream])
        self.assertEqual(text, "Hint ||| Partial answer")

    async def test_stalled_stream_is_stream_interrupted(self) -> None:
        self.chunks = [b"Hint ||| Partial", b" answer"]
        self.pause = 1.0
        transport = TurnTransport(str(self.server.make_url("/")), session=self.http, stream_timeout=0.2)
        stream = await transport.send([], CONFIG)
        received = []
        with self.assertRaises(StreamInterrupted):
            async for fragment in stream:
                received.append(fragment)
        self.assertEqual(received, ["Hint ||| Partial"])
        self.assertFalse(transport.busy)

    async def test_unreachable_service_is_transport_error(self) -> None:
        transport = TurnTransport("http://127.0.0.1:1", session=self.http)
        with self.assertRaises(TransportError) as ctx:
            await transport.send([], CONFIG)
        self.assertIsNone(ctx.exception.status)
        self.assertFalse(transport.busy)


class _DroppingContent:
    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk
        raise aiohttp.ClientPayloadError("Response payload is not completed")


class _StalledContent:
    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk
        raise asyncio.TimeoutError()


class _DroppingResponse:
    status = 200

    def __init__(self, chunks: list[bytes]) -> None:
        self.content = _DroppingContent(chunks)
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def release(self) -> None:
        self.closed = True


class _FakeHttpSession:
    def __init__(self, response) -> None:
        self.response = response

    async def post(self, url, json=None, headers=None, timeout=None):
        self.timeout = timeout
        return self.response


class TurnTransportInterruptionTests(unittest.IsolatedAsyncioTestCase):
    async def test_mid_stream_drop_is_stream_interrupted(self) -> None:
        response = _DroppingResponse([b"Good start|||Can you"])
        transport = TurnTransport("http://dojo.test", session=_FakeHttpSession(response))
        stream = await transport.send([], CONFIG)

        received = []
        with self.assertRaises(StreamInterrupted):
            async for fragment in stream:
                received.append(fragment)

        self.assertEqual(received, ["Good start|||Can you"])
        self.assertTrue(response.closed)
        self.assertTrue(stream.closed)
        self.assertFalse(transport.busy)

    async def test_mid_stream_timeout_is_stream_interrupted(self) -> None:
        response = _DroppingResponse([b"Hint ||| Partial"])
        response.content = _StalledContent([b"Hint ||| Partial"])
        transport = TurnTransport("http://dojo.test", session=_FakeHttpSession(response))
        stream = await transport.send([], CONFIG)

        received = []
        with self.assertRaises(StreamInterrupted):
            async for fragment in stream:
                received.append(fragment)

        self.assertEqual(received, ["Hint ||| Partial"])
        self.assertTrue(stream.closed)
        self.assertFalse(transport.busy)

    async def test_request_timeout_leaves_stream_unbounded(self) -> None:
        http = _FakeHttpSession(_DroppingResponse([]))
        transport = TurnTransport("http://dojo.test", session=http, connect_timeout=3.0)
        await transport.send([], CONFIG)
        self.assertIsNone(http.timeout.total)
        self.assertIsNone(http.timeout.sock_read)
        self.assertEqual(http.timeout.sock_connect, 3.0)

    async def test_early_close_releases_connection(self) -> None:
        response = _DroppingResponse([b"one", b"two"])
        transport = TurnTransport("http://dojo.test", session=_FakeHttpSession(response))
        stream = await transport.send([], CONFIG)
        async for _fragment in stream:
            break
        await stream.aclose()
        self.assertTrue(response.closed)
        self.assertFalse(transport.busy)


if __name__ == "__main__":
    unittest.main()
