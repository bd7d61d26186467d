import asyncio
import logging
from collections.abc import Awaitable, Callable

from dojo.config import get_settings, openai_api_key
from dojo.models.session import SessionEvent
from dojo.protocol.emphasis import plain_text

LOGGER = logging.getLogger(__name__)


class OpenAISpeechSynthesizer:
    def __init__(
        self,
        model: str | None = None,
        voice: str | None = None,
        on_audio: Callable[[bytes], Awaitable[None]] | None = None,
    ) -> None:
        settings = get_settings()
        self._model = model or settings.tts_model
        self._voice = voice or settings.tts_voice
        self._on_audio = on_audio

    async def speak(self, text: str) -> bytes:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=openai_api_key())
        response = await client.audio.speech.create(
            model=self._model,
            voice=self._voice,
            input=text,
            response_format="mp3",
        )
        audio = response.content
        if self._on_audio is not None:
            await self._on_audio(audio)
        return audio


class SpeechNotifier:
    """Speaks finalized channel messages as fire-and-forget tasks.

    Synthesis failures are logged and never reach the session.
    """

    def __init__(self, synthesizer, enabled: bool = True, personas: tuple[str, ...] = ("interviewer",)) -> None:
        self._synthesizer = synthesizer
        self.enabled = enabled
        self._personas = set(personas)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def attach(self, session) -> Callable[[], None]:
        return session.subscribe(self.handle_event)

    def handle_event(self, event: SessionEvent) -> None:
        if not self.enabled or event.type != "channel_finalized":
            return
        if event.data.get("persona") not in self._personas:
            return
        text = plain_text(event.data.get("content", "")).strip()
        if not text:
            return
        task = asyncio.get_running_loop().create_task(self._speak(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _speak(self, text: str) -> None:
        try:
            await self._synthesizer.speak(text)
        except Exception:
            LOGGER.exception("Speech synthesis failed for %d chars", len(text))
