"""
Text helpers shared across components.
"""

import hashlib
import re

CJK_PATTERN = re.compile(r"[\u4e00-\u9fa5]")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Share of CJK code points above which a query is treated as Chinese
CJK_RATIO_THRESHOLD = 0.3


def detect_query_language(query: str) -> str:
    """Return "zh" when more than 30% of the characters are Han, else "en"."""
    if not query:
        return "en"
    chinese_chars = len(CJK_PATTERN.findall(query))
    return "zh" if chinese_chars / len(query) > CJK_RATIO_THRESHOLD else "en"


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return WHITESPACE_PATTERN.sub(" ", query.lower().strip())


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()
