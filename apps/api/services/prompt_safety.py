"""Prompt sanitization and provider message classification."""

from __future__ import annotations

import re


_AGE_PATTERN = re.compile(r"\b(1[0-9]|20)\s*(anos|years?\s*old|yo)\b", re.IGNORECASE)
_YOUTH_PATTERN = re.compile(r"\b(jovem|jovens|novinha|novinhas|teen|teens|teenager|teenagers)\b", re.IGNORECASE)
_SENSUAL_PATTERN = re.compile(r"\b(sexy|sensual|provocante|provocative|er[oó]tica|erotic)\b", re.IGNORECASE)
_PEOPLE_PATTERN = re.compile(
    r"\b(mulher|mulheres|pessoa|pessoas|garota|garotas|homem|homens|woman|women|person|people|girl|girls|man|men)\b",
    re.IGNORECASE,
)
_ADULT_PATTERN = re.compile(r"\b(adulta|adultas|adulto|adultos|adult|adults|18\+|maior de idade)(?!\w)", re.IGNORECASE)
_NO_BODY_FOCUS_PATTERN = re.compile(r"\bno focus on the body\b", re.IGNORECASE)

ADULT_PREFIX = "Adults (18+) depicted discreetly."
NO_BODY_FOCUS_SUFFIX = "No focus on the body."

_SAFETY_MARKERS = (
    "rejected by the safety system",
    "safety_violations",
    "content policy",
    "content_policy",
    "moderation_blocked",
    "safety",
)
_TOO_LARGE_MARKERS = (
    "request entity too large",
    "payload too large",
    "body exceeded",
    "413",
    "too large",
)


def sanitize_prompt(text: str) -> str:
    """Rewrite age and sensual wording into neutral terms before calling the provider."""
    prompt = (text or "").strip()
    prompt = _AGE_PATTERN.sub("adult", prompt)
    prompt = _YOUTH_PATTERN.sub("adult", prompt)
    prompt = _SENSUAL_PATTERN.sub("discreet", prompt)

    mentions_people = bool(_PEOPLE_PATTERN.search(prompt))
    if mentions_people and not _ADULT_PATTERN.search(prompt):
        prompt = f"{ADULT_PREFIX} {prompt}"
    if mentions_people and not _NO_BODY_FOCUS_PATTERN.search(prompt):
        prompt = f"{prompt} {NO_BODY_FOCUS_SUFFIX}"
    return prompt.strip()


def is_safety_error_message(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _SAFETY_MARKERS)


def is_payload_too_large_message(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _TOO_LARGE_MARKERS)
