import json
import logging
import re
from collections.abc import AsyncIterator
from typing import Any

from dojo.config import chat_model, openai_api_key
from dojo.models.chat import ChatRequest
from dojo.models.session import DIFFICULTY_PROFILES, TranscriptEntry
from dojo.protocol.sentinel_parser import CHANNEL_SEPARATOR, TELEMETRY_END, TELEMETRY_START

LOGGER = logging.getLogger(__name__)

INTERVIEW_STRATEGY_STAGES = [
    {
        "name": "introduction",
        "goal": "Open curtly and collect a concise introduction.",
        "template": "Introduce yourself and highlight your experience relevant to {role}.",
    },
    {
        "name": "technical_depth",
        "goal": "Probe technical decision-making, tradeoffs, and measurable outcomes.",
        "template": "Walk me through a recent technical decision you made as a {role}. What options did you reject and why?",
    },
    {
        "name": "problem_solving",
        "goal": "Test debugging and problem-solving under pressure.",
        "template": "Tell me about the hardest production issue you debugged. How did you find the root cause?",
    },
    {
        "name": "collaboration",
        "goal": "Understand communication style and conflict resolution.",
        "template": "Describe a disagreement with a teammate about a technical approach. How was it resolved?",
    },
    {
        "name": "reflection",
        "goal": "Close with reflection and forward-looking thinking.",
        "template": "If you joined tomorrow as a {role}, what would you change first and how would you measure it?",
    },
]

PERSONALITIES = {
    1: (
        "- You are KIND, PATIENT, and ENCOURAGING.\n"
        "- Treat the candidate like a junior peer or intern who is learning.\n"
        "- If they make a mistake, gently guide them to the correct answer.\n"
        "- Do NOT be arrogant."
    ),
    2: (
        "- You are PROFESSIONAL, POLITE, and BALANCED.\n"
        "- Act like a standard corporate recruiter or hiring manager.\n"
        "- Ask standard questions. No trick questions."
    ),
    3: (
        "- You are STRICT and have HIGH STANDARDS.\n"
        "- Call out vague answers, but remain professional.\n"
        "- Dig deep into technical details."
    ),
    4: (
        "- You are ARROGANT and NITPICKY.\n"
        "- Challenge every assumption the candidate makes.\n"
        "- Use **double stars** for warnings."
    ),
    5: (
        "- You are LEGENDARY, EXTREMELY DIFFICULT, and have ZERO TOLERANCE for vague answers.\n"
        "- Nitpick every single word.\n"
        "- Use ***triple stars*** for harsh verdicts and **double stars** for shouting."
    ),
}

PERSONA_FOCUS = {
    "technologist": "Drill into implementation details, data structures, and production tradeoffs.",
    "visionary": "Focus on high-level architecture, product thinking, and long-term impact.",
}

INTERVIEWER_SYSTEM_PROMPT = """
You are a Technical Interviewer.
Intensity Level: {intensity} / 5 ({label}).

YOUR PERSONALITY:
{personality}

FOCUS:
{focus}

FORMATTING RULES:
- Use ***TRIPLE STARS*** for extreme severity (level 5 mainly).
- Use **DOUBLE STARS** for warnings or emphasis.
- Use *SINGLE STARS* for corrections.
- Ask exactly one question per reply. Never output the sequences "{separator}" or "{telemetry}".

Current Role Context: {role}
{resume_instruction}
""".strip()

SUGGESTER_SYSTEM_PROMPT = """
You are a Mentor and Interview Coach watching a mock interview for a {role} role.

Before your advice, output a metadata block in this EXACT format:
{start}
{{"confidence": <integer 0-100>, "topics": ["detected", "technical", "topics"], "feedback": "<one sentence>"}}
{end}

Then give a supportive mentoring hint of at most 2 sentences. Never output the sequence "{separator}".
""".strip()

OPENING_INSTRUCTION = (
    "SYSTEM INSTRUCTION: Start the interview now. DEMAND the candidate to "
    "\"Introduce yourself and highlight your experience relevant to {role}\". "
    "Be curt. Do not ask any technical questions yet."
)
FOLLOWUP_INSTRUCTION = "Candidate answered: \"{answer}\". Ask the next follow-up question."
RESUME_INSTRUCTION = "The candidate opted into resume grilling: press hard on every claim about past roles and projects."

LOW_SIGNAL_PHRASES = {
    "i do not know",
    "i don't know",
    "not sure",
    "no idea",
    "can't say",
    "cannot say",
    "nothing much",
    "n/a",
}
SIGNAL_MARKERS = (
    "because",
    "for example",
    "for instance",
    "tradeoff",
    "result",
    "impact",
    "improved",
    "reduced",
    "increased",
    "measured",
    "learned",
    "challenge",
)
TOPIC_KEYWORDS = (
    "api",
    "architecture",
    "caching",
    "database",
    "debugging",
    "deployment",
    "latency",
    "performance",
    "react",
    "scalability",
    "security",
    "testing",
    "typescript",
    "python",
    "kubernetes",
    "monitoring",
)
MAX_CONTEXT_TURNS = 10
MAX_TURN_TEXT_LENGTH = 600


async def stream_turn(request: ChatRequest) -> AsyncIterator[str]:
    """Streams one turn in the wire grammar: coach text, separator, interviewer text."""
    api_key = openai_api_key()
    if request.is_opening:
        LOGGER.info("Generating opening turn for role=%s intensity=%s", request.user_role, request.intensity)
        yield f" {CHANNEL_SEPARATOR} "
        async for piece in _stream_interviewer(request, api_key):
            yield piece
        return

    LOGGER.info("Generating follow-up turn (%d messages) for role=%s", len(request.messages), request.user_role)
    suggester_text = await generate_suggester_text(request, api_key)
    if suggester_text:
        yield suggester_text
    yield f" {CHANNEL_SEPARATOR} "
    async for piece in _stream_interviewer(request, api_key):
        yield piece


async def generate_suggester_text(request: ChatRequest, api_key: str = "") -> str:
    if api_key:
        candidate = await _generate_suggester_with_openai(request, api_key)
        if candidate:
            return candidate
    return _fallback_suggester(request)


def build_interviewer_messages(request: ChatRequest) -> list[dict[str, str]]:
    profile = DIFFICULTY_PROFILES[request.intensity]
    system_prompt = INTERVIEWER_SYSTEM_PROMPT.format(
        intensity=request.intensity,
        label=profile.label,
        personality=PERSONALITIES[request.intensity],
        focus=PERSONA_FOCUS[request.persona],
        separator=CHANNEL_SEPARATOR,
        telemetry=TELEMETRY_START,
        role=request.user_role,
        resume_instruction=RESUME_INSTRUCTION if request.is_grill_mode else "",
    )
    messages = [{"role": "system", "content": system_prompt}]
    history = _prepare_turns_for_prompt(request.messages[:-1])
    messages.extend({"role": turn["role"], "content": turn["text"]} for turn in history)
    if request.is_opening:
        instruction = OPENING_INSTRUCTION.format(role=request.user_role)
    else:
        instruction = FOLLOWUP_INSTRUCTION.format(answer=_compact(request.last_user_message))
    messages.append({"role": "user", "content": instruction})
    return messages


def evaluate_answer_quality(answer_text: str, current_question: str) -> dict[str, Any]:
    answer = _normalize_for_overlap(answer_text)
    question = _normalize_for_overlap(current_question)
    words = [token for token in answer.split(" ") if token]
    word_count = len(words)
    overlap = _token_overlap_ratio(answer, question) if question else 0.0

    has_signal = any(marker in answer for marker in SIGNAL_MARKERS)
    low_signal = any(phrase in answer for phrase in LOW_SIGNAL_PHRASES)

    score = 0.0
    score += min(word_count / 24.0, 1.0) * 0.55
    score += min(overlap, 1.0) * 0.2
    score += 0.25 if has_signal else 0.0
    if low_signal:
        score *= 0.4
    score = max(0.0, min(score, 1.0))

    needs_clarification = score < 0.42 or word_count < 8 or low_signal
    reason = "answer_was_concise"
    if low_signal:
        reason = "answer_lacked_substance"
    elif word_count < 8:
        reason = "answer_too_short"
    elif score < 0.42:
        reason = "answer_needs_specifics"

    return {
        "score": score,
        "needsClarification": bool(needs_clarification),
        "wordCount": word_count,
        "reason": reason,
        "topics": [keyword for keyword in TOPIC_KEYWORDS if keyword in words],
    }


def build_telemetry_block(payload: dict[str, Any]) -> str:
    return f"{TELEMETRY_START} {json.dumps(payload, ensure_ascii=True)} {TELEMETRY_END}"


async def _stream_interviewer(request: ChatRequest, api_key: str) -> AsyncIterator[str]:
    if api_key:
        emitted = False
        try:
            async for piece in _stream_interviewer_with_openai(request, api_key):
                emitted = True
                yield piece
            if emitted:
                return
        except Exception as exc:
            if emitted:
                LOGGER.warning("Interviewer stream failed mid-response: %s", exc)
                raise
            LOGGER.warning("Interviewer generation unavailable, using question bank: %s", exc)
    yield _fallback_interviewer_line(request)


async def _stream_interviewer_with_openai(request: ChatRequest, api_key: str) -> AsyncIterator[str]:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    stream = await client.chat.completions.create(
        model=chat_model(),
        messages=build_interviewer_messages(request),
        temperature=0.7,
        stream=True,
    )
    async for text in strip_separators(_delta_texts(stream)):
        yield text


async def _delta_texts(stream) -> AsyncIterator[str]:
    async for chunk in stream:
        if chunk.choices and chunk.choices[0].delta.content:
            yield chunk.choices[0].delta.content


async def strip_separators(pieces: AsyncIterator[str]) -> AsyncIterator[str]:
    """Drops channel separators from model output, even when one spans two pieces."""
    pending = ""
    async for piece in pieces:
        pending += piece
        while CHANNEL_SEPARATOR in pending:
            pending = pending.replace(CHANNEL_SEPARATOR, "")
        cut = len(pending) - _partial_separator_length(pending)
        ready, pending = pending[:cut], pending[cut:]
        if ready:
            yield ready
    if pending:
        yield pending


def _partial_separator_length(text: str) -> int:
    for size in range(min(len(CHANNEL_SEPARATOR) - 1, len(text)), 0, -1):
        if text.endswith(CHANNEL_SEPARATOR[:size]):
            return size
    return 0


async def _generate_suggester_with_openai(request: ChatRequest, api_key: str) -> str | None:
    try:
        from openai import AsyncOpenAI
    except Exception:  # pragma: no cover - optional dependency
        return None

    try:
        client = AsyncOpenAI(api_key=api_key)
        response = await client.chat.completions.create(
            model=chat_model(),
            messages=[
                {
                    "role": "system",
                    "content": SUGGESTER_SYSTEM_PROMPT.format(
                        role=request.user_role,
                        start=TELEMETRY_START,
                        end=TELEMETRY_END,
                        separator=CHANNEL_SEPARATOR,
                    ),
                },
                {
                    "role": "user",
                    "content": f"Analyze this candidate response: \"{_compact(request.last_user_message)}\"",
                },
            ],
            temperature=0.3,
        )
        text = (response.choices[0].message.content or "").replace(CHANNEL_SEPARATOR, "").strip()
        return text or None
    except Exception as exc:  # pragma: no cover - external failures
        LOGGER.warning("Suggester generation failed, using heuristic coach: %s", exc)
        return None


def _fallback_suggester(request: ChatRequest) -> str:
    question = _last_interviewer_question(request.messages)
    quality = evaluate_answer_quality(request.last_user_message, question)
    confidence = int(round(quality["score"] * 100))
    hints = {
        "answer_lacked_substance": "Avoid saying you don't know; reason out loud from what you do know.",
        "answer_too_short": "Expand with one concrete example: what you did and what changed.",
        "answer_needs_specifics": "Add numbers or a specific outcome to make the answer land.",
        "answer_was_concise": "Good structure. Keep tying examples to measurable impact.",
    }
    feedback = {
        "answer_lacked_substance": "The answer avoided the question.",
        "answer_too_short": "The answer was too brief to evaluate.",
        "answer_needs_specifics": "The answer stayed generic.",
        "answer_was_concise": "The answer was clear and relevant.",
    }
    telemetry = {
        "confidence": confidence,
        "topics": quality["topics"],
        "feedback": feedback[quality["reason"]],
    }
    return f"{build_telemetry_block(telemetry)}\n{hints[quality['reason']]}"


def _fallback_interviewer_line(request: ChatRequest) -> str:
    role = (request.user_role or "this role").strip()
    if request.is_opening:
        return INTERVIEW_STRATEGY_STAGES[0]["template"].format(role=role)

    question = _last_interviewer_question(request.messages)
    quality = evaluate_answer_quality(request.last_user_message, question)
    if quality["needsClarification"]:
        if request.intensity >= 4:
            return "**That is not an answer.** Give me a concrete example with what you did and the measurable outcome."
        return "Could you go one level deeper on that, including your reasoning and a concrete outcome?"

    stage = _resolve_stage(request.messages)
    return _normalize_question_text(stage["template"].format(role=role))


def _resolve_stage(messages: list[TranscriptEntry]) -> dict[str, str]:
    answered = len([message for message in messages if message.role == "user"])
    bounded_idx = min(max(answered, 0), len(INTERVIEW_STRATEGY_STAGES) - 1)
    return INTERVIEW_STRATEGY_STAGES[bounded_idx]


def _last_interviewer_question(messages: list[TranscriptEntry]) -> str:
    for message in reversed(messages):
        if message.role == "assistant":
            return message.content
    return ""


def _prepare_turns_for_prompt(turns: list[TranscriptEntry]) -> list[dict[str, str]]:
    cleaned: list[dict[str, str]] = []
    for turn in turns[-MAX_CONTEXT_TURNS:]:
        text = _compact(turn.content)
        if not text:
            continue
        if cleaned and cleaned[-1]["role"] == turn.role and cleaned[-1]["text"] == text:
            continue
        cleaned.append({"role": turn.role, "text": text})
    return cleaned


def _compact(text: str) -> str:
    return re.sub(r"\s+", " ", str(text or "")).strip()[:MAX_TURN_TEXT_LENGTH]


def _normalize_question_text(text: str) -> str:
    compact = re.sub(r"\s+", " ", str(text or "")).strip()
    if not compact:
        return ""
    if compact[-1] not in {"?", ".", "!"}:
        compact = f"{compact}?"
    return compact


def _normalize_for_overlap(text: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9'\s]", " ", str(text or "").lower())).strip()


def _token_overlap_ratio(candidate_text: str, reference_text: str) -> float:
    candidate_tokens = set(candidate_text.split(" "))
    reference_tokens = set(reference_text.split(" "))
    candidate_tokens.discard("")
    reference_tokens.discard("")
    if not candidate_tokens or not reference_tokens:
        return 0.0
    overlap = len(candidate_tokens.intersection(reference_tokens))
    return overlap / len(candidate_tokens)
