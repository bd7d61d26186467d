import asyncio
import unittest

from dojo.client.speech import SpeechNotifier
from dojo.models.session import SessionEvent


class RecordingSynthesizer:
    def __init__(self, error: Exception | None = None, delay: float = 0.0) -> None:
        self.spoken: list[str] = []
        self.error = error
        self.delay = delay

    async def speak(self, text: str) -> bytes:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.spoken.append(text)
        return b""


class FakeSession:
    def __init__(self) -> None:
        self.subscribers = []

    def subscribe(self, callback):
        self.subscribers.append(callback)
        return lambda: self.subscribers.remove(callback)

    def publish(self, event: SessionEvent) -> None:
        for callback in list(self.subscribers):
            callback(event)


def _finalized(persona: str, content: str) -> SessionEvent:
    return SessionEvent(
        type="channel_finalized",
        sessionId="session-1",
        data={"persona": persona, "content": content, "messageId": "r1_int", "requestId": "r1"},
    )


class SpeechNotifierTests(unittest.IsolatedAsyncioTestCase):
    async def test_speaks_interviewer_lines_without_markup(self) -> None:
        synthesizer = RecordingSynthesizer()
        session = FakeSession()
        SpeechNotifier(synthesizer).attach(session)

        session.publish(_finalized("interviewer", "***Wrong.*** Explain the **tradeoff**."))
        session.publish(_finalized("suggester", "Mention the cache hit rate."))
        session.publish(SessionEvent(type="messages_updated", sessionId="session-1", data={"requestId": "r1"}))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertEqual(synthesizer.spoken, ["Wrong. Explain the tradeoff."])

    async def test_disabled_notifier_is_silent(self) -> None:
        synthesizer = RecordingSynthesizer()
        notifier = SpeechNotifier(synthesizer, enabled=False)
        notifier.handle_event(_finalized("interviewer", "Hello"))
        await notifier.drain()
        self.assertEqual(synthesizer.spoken, [])

    async def test_synthesis_failure_is_logged_only(self) -> None:
        notifier = SpeechNotifier(RecordingSynthesizer(error=RuntimeError("tts quota")))
        with self.assertLogs("dojo.client.speech", level="ERROR"):
            notifier.handle_event(_finalized("interviewer", "Next question."))
            await notifier.drain()
        self.assertEqual(notifier.pending, 0)

    async def test_cancel_stops_pending_speech(self) -> None:
        synthesizer = RecordingSynthesizer(delay=5.0)
        notifier = SpeechNotifier(synthesizer)
        notifier.handle_event(_finalized("interviewer", "Long monologue."))
        self.assertEqual(notifier.pending, 1)
        await notifier.cancel()
        self.assertEqual(synthesizer.spoken, [])
        self.assertEqual(notifier.pending, 0)

    async def test_detach(self) -> None:
        synthesizer = RecordingSynthesizer()
        session = FakeSession()
        detach = SpeechNotifier(synthesizer).attach(session)
        detach()
        session.publish(_finalized("interviewer", "Anyone there?"))
        await asyncio.sleep(0)
        self.assertEqual(synthesizer.spoken, [])


if __name__ == "__main__":
    unittest.main()
