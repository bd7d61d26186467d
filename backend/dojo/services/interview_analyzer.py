import json
import logging
import re
import statistics
from typing import Any

from dojo.config import analysis_model, openai_api_key
from dojo.models.session import DIFFICULTY_PROFILES, TranscriptEntry
from dojo.protocol.emphasis import plain_text

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a strict hiring committee reviewing a mock interview. Score objectively and return compact JSON only."
)

USER_PROMPT_TEMPLATE = """
Analyze the following interview transcript for a {role} position.
Interview difficulty was {difficulty}/5 ({label}); hold the candidate to that bar.

Return strict JSON with keys:
score (0-100 integer), feedback (2-3 sentences of direct critique),
radarData (object with technical, communication, problemSolving, confidence, culturalFit, each 0-100),
strengths (list of short phrases), weaknesses (list of short phrases).

Transcript:
{transcript}
""".strip()

RADAR_KEYS = ("technical", "communication", "problemSolving", "confidence", "culturalFit")
HEDGING_MARKERS = ("maybe", "i think", "i guess", "probably", "sort of", "kind of", "not sure", "i don't know")
COLLABORATION_MARKERS = ("team", "we ", "together", "stakeholder", "mentored", "collaborat", "aligned")
SIGNAL_MARKERS = ("because", "for example", "tradeoff", "result", "impact", "measured", "reduced", "improved", "root cause")
MAX_LIST_ITEMS = 5


def build_analysis_prompt(transcript: list[TranscriptEntry], role: str, difficulty: int) -> str:
    profile = DIFFICULTY_PROFILES.get(difficulty, DIFFICULTY_PROFILES[3])
    return USER_PROMPT_TEMPLATE.format(
        role=role or "generalist",
        difficulty=profile.level,
        label=profile.label,
        transcript=format_transcript(transcript) or "No transcript provided.",
    )


def format_transcript(transcript: list[TranscriptEntry]) -> str:
    lines = []
    for entry in transcript:
        speaker = "Candidate" if entry.role == "user" else "Interviewer"
        text = plain_text(entry.content).strip()
        if text:
            lines.append(f"{speaker}: {text}")
    return "\n".join(lines)


def analyze_interview(
    transcript: list[TranscriptEntry],
    role: str,
    difficulty: int = 3,
    model: str | None = None,
    allow_remote: bool = True,
) -> dict[str, Any]:
    """Scores a finished transcript.

    Tries the configured OpenAI model in JSON mode first and falls back to a
    deterministic heuristic when no key is configured or the call fails. The
    returned ``report`` matches ``ScoreReport`` with ``status="final"``.
    """
    prompt = build_analysis_prompt(transcript, role, difficulty)
    api_key = openai_api_key()
    if api_key and allow_remote:
        report = _analyze_with_openai(prompt=prompt, model=model or analysis_model(), api_key=api_key)
        if report is not None:
            return {"report": report, "provider": "openai"}

    LOGGER.info("Scoring %d transcript entries with heuristic analyzer", len(transcript))
    return {"report": _analyze_with_heuristics(transcript, role, difficulty), "provider": "heuristic_fallback"}


def _analyze_with_openai(prompt: str, model: str, api_key: str) -> dict[str, Any] | None:
    try:
        from openai import OpenAI
    except Exception:  # pragma: no cover - optional dependency
        return None

    try:
        client = OpenAI(api_key=api_key)
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.1,
            response_format={"type": "json_object"},
        )
        data = json.loads(response.choices[0].message.content or "{}")
        radar = data.get("radarData") or {}
        return {
            "score": round(_clamp(float(data.get("score", 0.0)), 0.0, 100.0)),
            "feedback": str(data.get("feedback", "")).strip() or "No feedback provided by the analyzer.",
            "radarData": {key: round(_clamp(float(radar.get(key, 0.0)), 0.0, 100.0)) for key in RADAR_KEYS},
            "strengths": _string_list(data.get("strengths")),
            "weaknesses": _string_list(data.get("weaknesses")),
            "status": "final",
        }
    except Exception as exc:  # pragma: no cover - external API protection
        LOGGER.warning("Remote interview analysis failed: %s", exc)
        return None


def _analyze_with_heuristics(transcript: list[TranscriptEntry], role: str, difficulty: int) -> dict[str, Any]:
    answers = [plain_text(entry.content).strip() for entry in transcript if entry.role == "user"]
    answers = [answer for answer in answers if answer]
    if not answers:
        radar = {key: 0 for key in RADAR_KEYS}
        return {
            "score": 0,
            "feedback": "No candidate answers were recorded, so there is nothing to evaluate.",
            "radarData": radar,
            "strengths": [],
            "weaknesses": ["No answers given"],
            "status": "final",
        }

    joined = " ".join(answers)
    normalized = joined.lower()
    words = re.findall(r"\b[\w'-]+\b", normalized)
    word_count = len(words)
    lexical_diversity = len(set(words)) / word_count if word_count else 0.0
    avg_answer_words = word_count / len(answers)

    keywords = _collect_keywords(role)
    keyword_hits = sum(1 for token in words if token in keywords)
    signal_hits = sum(normalized.count(marker) for marker in SIGNAL_MARKERS)
    hedging_hits = sum(normalized.count(marker) for marker in HEDGING_MARKERS)
    collaboration_hits = sum(normalized.count(marker) for marker in COLLABORATION_MARKERS)

    depth = _clamp((min(avg_answer_words, 80) / 80.0) * 60.0 + lexical_diversity * 40.0, 0.0, 100.0)
    technical = _clamp(35.0 + keyword_hits * 9.0 + signal_hits * 4.0, 0.0, 100.0)
    communication = _clamp(depth * 0.7 + (30.0 if avg_answer_words >= 15 else 10.0), 0.0, 100.0)
    problem_solving = _clamp(30.0 + signal_hits * 12.0 + min(avg_answer_words, 60) * 0.5, 0.0, 100.0)
    confidence = _clamp(85.0 - hedging_hits * 12.0 - (15.0 if avg_answer_words < 8 else 0.0), 0.0, 100.0)
    cultural_fit = _clamp(55.0 + collaboration_hits * 10.0, 0.0, 100.0)

    # Harder levels pull every axis toward a stricter bar.
    strictness = 1.0 - (max(1, min(5, difficulty)) - 1) * 0.04
    radar = {
        "technical": round(technical * strictness),
        "communication": round(communication * strictness),
        "problemSolving": round(problem_solving * strictness),
        "confidence": round(confidence * strictness),
        "culturalFit": round(cultural_fit * strictness),
    }
    score = round(statistics.mean(radar.values()))

    labels = {
        "technical": "Technical Depth",
        "communication": "Communication",
        "problemSolving": "Problem Solving",
        "confidence": "Confidence",
        "culturalFit": "Cultural Fit",
    }
    ranked = sorted(RADAR_KEYS, key=lambda key: radar[key], reverse=True)
    strengths = [labels[key] for key in ranked if radar[key] >= 70][:MAX_LIST_ITEMS]
    weaknesses = [labels[key] for key in reversed(ranked) if radar[key] < 60][:MAX_LIST_ITEMS]

    feedback = (
        f"Across {len(answers)} answers averaging {avg_answer_words:.0f} words, the candidate "
        f"used {keyword_hits} role-relevant terms and {signal_hits} evidence markers. "
    )
    if hedging_hits:
        feedback += f"Hedging appeared {hedging_hits} times and undercut confidence."
    else:
        feedback += "Answers were delivered without hedging."

    return {
        "score": score,
        "feedback": feedback,
        "radarData": radar,
        "strengths": strengths,
        "weaknesses": weaknesses,
        "status": "final",
    }


def _collect_keywords(role: str) -> set[str]:
    base = {
        "architecture",
        "design",
        "scalable",
        "performance",
        "testing",
        "debugging",
        "system",
        "data",
        "metrics",
        "api",
        "security",
        "reliability",
        "deployment",
        "latency",
        "cache",
        "database",
    }
    role_tokens = set(re.findall(r"[a-z]+", (role or "").lower()))
    return {token for token in base | role_tokens if len(token) > 2}


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()][:MAX_LIST_ITEMS]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))
