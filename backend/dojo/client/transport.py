import asyncio
import codecs
import logging
from collections.abc import AsyncIterator, Callable

import aiohttp

from dojo.client.errors import StreamInterrupted, TransportBusy, TransportError
from dojo.models.chat import ChatRequest
from dojo.models.session import SessionConfig, TranscriptEntry

LOGGER = logging.getLogger(__name__)


class TurnStream:
    """Text fragments of one streamed turn response.

    Iterate once. The connection is released when iteration ends, fails or is
    cancelled, and ``aclose()`` may be called at any point to stop early.
    """

    def __init__(self, response: aiohttp.ClientResponse, on_close: Callable[[], None]) -> None:
        self._response = response
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            async for chunk in self._response.content.iter_any():
                text = decoder.decode(chunk)
                if text:
                    yield text
            tail = decoder.decode(b"", final=True)
            if tail:
                yield tail
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Turn stream interrupted: %s", exc)
            raise StreamInterrupted(str(exc) or "Connection interrupted, please retry") from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        # close() drops the connection instead of draining an unread body.
        self._response.close()
        self._on_close()


class TurnTransport:
    """Issues turn-generation calls, at most one in flight at a time.

    Connecting is bounded by ``connect_timeout``. A generation stream runs as long
    as the service keeps it open, whatever the shared session's own timeout is,
    unless ``stream_timeout`` caps the silence between two reads.
    """

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        chat_path: str = "/api/chat",
        user_id: str | None = None,
        connect_timeout: float = 10.0,
        stream_timeout: float | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}{chat_path}"
        self._session = session
        self._owns_session = session is None
        self._user_id = user_id
        self._busy = False
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout, sock_read=stream_timeout)

    @property
    def busy(self) -> bool:
        return self._busy

    async def send(self, transcript: list[TranscriptEntry], config: SessionConfig) -> TurnStream:
        if self._busy:
            raise TransportBusy()
        self._busy = True
        payload = ChatRequest.from_session(transcript, config).model_dump(mode="json")
        headers = {"X-User-Id": self._user_id} if self._user_id else None
        try:
            response = await self._http().post(self._url, json=payload, headers=headers, timeout=self._timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._busy = False
            LOGGER.warning("Turn request to %s failed: %s", self._url, exc)
            raise TransportError(f"Could not reach the interview service: {exc}") from exc
        except BaseException:
            self._busy = False
            raise

        if response.status >= 400:
            detail = await _read_error_detail(response)
            response.release()
            self._busy = False
            LOGGER.warning("Turn request rejected with status %s: %s", response.status, detail)
            raise TransportError(f"Interview service returned {response.status}: {detail}", status=response.status)

        LOGGER.debug("Streaming turn with %d transcript entries", len(transcript))
        return TurnStream(response, on_close=self._release)

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "TurnTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    def _release(self) -> None:
        self._busy = False


async def _read_error_detail(response: aiohttp.ClientResponse) -> str:
    try:
        return (await response.text())[:200]
    except aiohttp.ClientError:
        return response.reason or ""
