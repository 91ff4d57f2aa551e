"""Chinese character helpers shared by validation and processing."""

# CJK Unified Ideographs block used for character counts
CJK_START = "\u4e00"
CJK_END = "\u9fff"


def is_chinese_char(char: str) -> bool:
    """True if ``char`` is in the CJK Unified Ideographs block (U+4E00-U+9FFF)."""
    return CJK_START <= char <= CJK_END


def count_chinese_characters(text: str) -> int:
    """Count CJK Unified Ideograph codepoints in ``text``.

    Example:
        >>> count_chinese_characters("你好, Li Ming!")
        2
    """
    return sum(1 for char in text if is_chinese_char(char))
