"""Text helpers shared by the sync and chat pipelines."""

import hashlib
import math
import os
import re

# Hangul jamo and syllables
_KOREAN_CHARS = re.compile(r"[ㄱ-ㅎㅏ-ㅣ가-힣]")
_WHITESPACE = re.compile(r"\s+")

LANGUAGE_SAMPLE_CHARS = 1000
LANGUAGE_RATIO_THRESHOLD = 0.1


def clean_text(text: str) -> str:
    """Normalise line endings and collapse redundant blank lines and spaces.

    Args:
        text (str): Raw document text.

    Returns:
        str: The cleaned, stripped text.
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def extract_title(content: str, path: str | None = None) -> str:
    """Return the first level-one markdown heading, or the file name without extension.

    Args:
        content (str): Markdown content.
        path (str | None): Corpus path used as fallback.

    Returns:
        str: The title, or an empty string if neither is available.
    """
    for line in (content or "").splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            title = stripped[2:].strip()
            if title:
                return title
    if path:
        return os.path.splitext(os.path.basename(path))[0]
    return ""


def detect_language(text: str, sample_chars: int = LANGUAGE_SAMPLE_CHARS, threshold: float = LANGUAGE_RATIO_THRESHOLD) -> str:
    """Detect whether a text is predominantly Korean or English.

    The share of Hangul characters among the non-whitespace characters of the
    first ``sample_chars`` characters decides. Above ``threshold`` the text is
    Korean.

    Args:
        text (str): The text to inspect.
        sample_chars (int): Length of the inspected prefix.
        threshold (float): Minimum Hangul ratio for "ko".

    Returns:
        str: "ko" or "en".
    """
    sample = (text or "")[:sample_chars]
    non_whitespace = len(_WHITESPACE.sub("", sample))
    if non_whitespace == 0:
        return "en"
    korean = len(_KOREAN_CHARS.findall(sample))
    return "ko" if korean / non_whitespace > threshold else "en"


def truncate(text: str, max_length: int, suffix: str = "...") -> str:
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - len(suffix))] + suffix


def content_hash(text: str) -> str:
    """SHA-256 hex digest of a text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text or "") / 4)
