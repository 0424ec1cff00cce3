"""Script-ratio classification of text content."""

from __future__ import annotations

import re

# Arabic, Arabic Supplement, Arabic Extended-A and the presentation forms.
RTL_CHAR_PATTERN = re.compile(
    r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]"
)
URL_PATTERN = re.compile(r"https?://\S+|www\.\S+", re.IGNORECASE)
NUMBER_PATTERN = re.compile(r"[0-9]+")
WHITESPACE_PATTERN = re.compile(r"\s+")

MIN_TEXT_LENGTH = 3


def strip_neutral(text: str) -> str:
    """Drop URLs, numeric runs, whitespace and every non-letter character."""

    cleaned = URL_PATTERN.sub("", text)
    cleaned = NUMBER_PATTERN.sub("", cleaned)
    cleaned = WHITESPACE_PATTERN.sub("", cleaned)
    return "".join(char for char in cleaned if char.isalpha())


def rtl_ratio(text: str) -> float:
    """Return the share of right-to-left letters among all letters in text."""

    if not text or not text.strip():
        return 0.0

    letters = strip_neutral(text)
    if not letters:
        return 0.0

    rtl_count = len(RTL_CHAR_PATTERN.findall(letters))
    return rtl_count / len(letters)


def is_classifiable(text: str) -> bool:
    """Very short strings carry too little signal to classify."""

    return bool(text) and len(text.strip()) >= MIN_TEXT_LENGTH
