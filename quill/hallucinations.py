"""Removal of phrases speech-to-text models invent on silent or noisy audio."""

from __future__ import annotations

import logging
import re
from itertools import product

logger = logging.getLogger(__name__)


def _amara_credits() -> list[str]:
    """Subtitle-credit lines in both scripts, with and without spacing."""
    return [
        f"字幕由{gap}Amara.org{gap}社{community}提供"
        for community, gap in product("區区", ("", " "))
    ]


# Phrases Whisper tends to emit on silent, noisy or truncated audio. They come
# from video captions in its training data, not from anything that was said.
# Chinese entries are given as (Traditional, Simplified) pairs.
_CHINESE_PAIRS = (
    ("請不吝點讚 訂閱 轉發 打賞支持明鏡與點點欄目", "请不吝点赞 订阅 转发 打赏支持明镜与点点栏目"),
    ("請訂閱我的頻道", "请订阅我的频道"),
    ("感謝您的收看", "感谢您的收看"),
    ("多謝觀看", "多谢观看"),
    ("字幕志願者", "字幕志愿者"),
)

_PHRASES_BY_LANGUAGE: dict[str, tuple[str, ...]] = {
    "zh": (
        *_amara_credits(),
        *(variant for pair in _CHINESE_PAIRS for variant in pair),
    ),
    "en": (
        "Thanks for watching",
        "Thank you for watching",
        "Please subscribe to my channel",
    ),
    "ja": tuple(f"ご視聴ありがとうございま{ending}" for ending in ("した", "す")),
    "ko": ("시청해주셔서 감사합니다", "MBC 뉴스"),
}

_LATIN_TAIL = "[!.?…]*"
_CJK_TAIL = "[！。？!.?…]*"


def _is_latin_phrase(phrase: str) -> bool:
    head = phrase[:1]
    return head.isascii() and head.isalpha()


def _compile(phrase: str) -> re.Pattern[str]:
    escaped = re.escape(phrase)
    if _is_latin_phrase(phrase):
        # Latin-script phrases may occur mid-sentence in real speech, so they
        # are only stripped at the very end of the utterance.
        return re.compile(
            rf"\b{escaped}\b{_LATIN_TAIL}\s*\Z", re.IGNORECASE | re.ASCII
        )
    # CJK phrases are specific enough that any occurrence is a hallucination.
    return re.compile(escaped + _CJK_TAIL)


_MATCHERS = tuple(
    _compile(phrase)
    for phrases in _PHRASES_BY_LANGUAGE.values()
    for phrase in phrases
)


def filter_hallucinations(text: str) -> str:
    """Strip known hallucination phrases from ``text`` and trim whitespace.

    Returns an empty string when the text consisted of hallucinations only.
    """
    cleaned = text
    for matcher in _MATCHERS:
        cleaned = matcher.sub("", cleaned)
    cleaned = cleaned.strip()
    if cleaned != text.strip():
        logger.debug("stt: filtered hallucination before=%r after=%r", text, cleaned)
    return cleaned