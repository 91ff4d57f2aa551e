"""Pinyin romanization for Chinese lesson text.

Pinyin is always derived at use time with pypinyin; lesson documents never
store it.
"""

import logging
from typing import List

from pypinyin import Style, lazy_pinyin

logger = logging.getLogger(__name__)


def get_chinese_pinyin(text: str, tone_marks: bool = True) -> str:
    """Get pinyin romanization for Chinese text.

    Non-Chinese characters (punctuation, Latin, digits) are dropped.

    Args:
        text: Chinese text (simplified or traditional)
        tone_marks: Include tone marks (default: True)

    Returns:
        Pinyin romanization, e.g. "yínháng" for 银行

    Example:
        >>> get_chinese_pinyin("银行")
        'yínháng'
        >>> get_chinese_pinyin("你好！我叫李明。")
        'nǐ hǎo wǒ jiào lǐ míng'
    """
    syllables = get_pinyin_syllables(text, tone_marks=tone_marks)

    # Single words read better without spaces, phrases with them
    if len(text.strip()) <= 2:
        return "".join(syllables)
    return " ".join(syllables)


def get_pinyin_syllables(text: str, tone_marks: bool = True) -> List[str]:
    """Return one pinyin syllable per Chinese character in ``text``."""
    style = Style.TONE if tone_marks else Style.NORMAL
    return lazy_pinyin(text, style=style, errors="ignore")


def clean_sense_marker(text: str) -> str:
    """Remove sense markers (trailing numbers) from Chinese vocabulary.

    Teaching materials write homographs as 本1, 会2; the number is not part
    of the word.

    Example:
        >>> clean_sense_marker("本1")
        '本'
        >>> clean_sense_marker("学校")
        '学校'
    """
    return text.rstrip("0123456789")
