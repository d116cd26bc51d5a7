"""Text normalization shared by keyword matching and cue detection."""
import re

_THOUSANDS = re.compile(r'(?<=\d),(?=\d{3}\b)')
_PUNCT = re.compile(r"[^\w\s.']|_")
_STRAY_DOT = re.compile(r'(?<!\d)\.|\.(?!\d)')
_SPACES = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    """
    Lowercase, strip punctuation and collapse whitespace.

    "1,200" becomes "1200", "2.5" keeps its decimal point, "2-person"
    becomes "2 person" and "sq. ft." becomes "sq ft".
    """
    if not text:
        return ""
    text = text.lower()
    text = _THOUSANDS.sub('', text)
    text = text.replace("'", "")
    text = _PUNCT.sub(' ', text)
    text = _STRAY_DOT.sub(' ', text)
    return _SPACES.sub(' ', text).strip()
