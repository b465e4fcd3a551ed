import re
from typing import Optional

_MINUTES_RE = re.compile(r"(\d+)\s*min", re.IGNORECASE)


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace. None becomes ""."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.lower().strip())


def significant_words(text: Optional[str]) -> list[str]:
    """Words longer than two characters, after normalization."""
    return [w for w in normalize_text(text).split(" ") if len(w) > 2]


def word_overlap_ratio(a: Optional[str], b: Optional[str]) -> float:
    """
    Share of a's words that also appear in b, over the longer word count.

    Both sides are normalized first. Used to ignore minor rewording of step
    instructions (e.g. "Boil the pasta" vs "Boil the pasta well").
    """
    words_a = normalize_text(a).split(" ")
    words_b = normalize_text(b).split(" ")
    total = max(len(words_a), len(words_b))
    matching = [w for w in words_a if w in words_b]
    return len(matching) / total


def extract_minutes(text: Optional[str]) -> Optional[int]:
    """
    Pull a minute count out of free text.

    "15 minutes worked better" -> 15, "cook 8min" -> 8, "a bit longer" -> None.
    """
    if not text:
        return None
    match = _MINUTES_RE.search(text)
    if not match:
        return None
    return int(match.group(1))


def format_number(value: Optional[float]) -> str:
    # 2.0 -> "2", 1.5 -> "1.5"
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
