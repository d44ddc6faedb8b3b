"""
text_repair.py

Repairs mojibake (UTF-8 bytes read as Latin-1/CP1252) and stray characters in
free-text fields of municipal tables: names, addresses, municipalities.

Key Features:
- Ordered table of literal corrupted sequences, double-encoded first.
- NFC composition, control/replacement character stripping, whitespace collapse.
- Repeats until the text stops changing, so repair(repair(s)) == repair(s).
- Pure functions, no logging, no side effects.
"""
import re
import unicodedata
from typing import Dict, Iterable, List, Optional, Tuple

# Order matters: longest (double-encoded) sequences before their single-encoded
# prefixes, and mojibake before the generic quote/space substitutions.
MOJIBAKE_SEQUENCES: Tuple[Tuple[str, str], ...] = (
    # UTF-8 encoded twice
    ("ÃÂ³", "ó"),
    ("ÃÂ©", "é"),
    ("ÃÂ­", "í"),
    ("ÃÂ¡", "á"),
    ("ÃÂº", "ú"),
    ("ÃÂ\u0093", "Ó"),
    ("ÃÂ\u0089", "É"),
    ("ÃÂ\u008D", "Í"),
    ("ÃÂ\u0081", "Á"),
    ("ÃÂ\u009A", "Ú"),
    ("ÃÂ±", "ñ"),
    ("ÃÂ\u0091", "Ñ"),
    ("ÃÂª", "ª"),
    # Latin-1 reading
    ("Ã³", "ó"),
    ("Ã©", "é"),
    ("Ã­", "í"),
    ("Ã¡", "á"),
    ("Ãº", "ú"),
    ("Ã¼", "ü"),
    ("Ã\u0093", "Ó"),
    ("Ã\u0089", "É"),
    ("Ã\u008D", "Í"),
    ("Ã\u0081", "Á"),
    ("Ã\u009A", "Ú"),
    ("Ã±", "ñ"),
    ("Ã\u0091", "Ñ"),
    # CP1252 reading of the uppercase forms
    ("Ã“", "Ó"),
    ("Ã‰", "É"),
    ("Ãš", "Ú"),
    ("Ã‘", "Ñ"),
    ("Âº", "º"),
    ("Âª", "ª"),
    ("Â´", "'"),
)

PUNCTUATION_FIXES: Tuple[Tuple[str, str], ...] = (
    ("Â ", " "),
    ("Â", ""),
    ("´´", '"'),
    ("``", '"'),
    ("\ufffd\ufffd", '"'),
    ("''", '"'),
    ("´", "'"),
    ("‘", "'"),
    ("’", "'"),
    ("“", '"'),
    ("”", '"'),
    ("\u00a0", " "),
    ("–", "-"),
    ("\r", ""),
    ("\n", " "),
    ("\t", " "),
)

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F-\x9F]")
_WHITESPACE = re.compile(r"\s+")


def _single_pass(text: str) -> str:
    for corrupted, correct in MOJIBAKE_SEQUENCES + PUNCTUATION_FIXES:
        if corrupted in text:
            text = text.replace(corrupted, correct)
    text = unicodedata.normalize("NFC", text)
    text = _CONTROL_CHARS.sub("", text)
    text = text.replace("\uFFFD", "")
    return _WHITESPACE.sub(" ", text).strip()


def repair_text(text: Optional[str]) -> Optional[str]:
    """
    Return visually correct text. None and "" pass through unchanged.
    """
    if not text:
        return text
    # Repeat until a pass changes nothing
    current, repaired = None, text
    while repaired != current:
        current = repaired
        repaired = _single_pass(current)
    return current


def has_corrupted_encoding(text: Optional[str]) -> bool:
    """
    True if text contains the replacement character or a known mojibake sequence.
    Does not alter the text.
    """
    if not text or not isinstance(text, str):
        return False
    if "\uFFFD" in text:
        return True
    return any(corrupted in text for corrupted, _ in MOJIBAKE_SEQUENCES)


def repair_record_text(record: Dict, fields: Optional[Iterable[str]] = None) -> Dict:
    """
    Copy of record with string values repaired (all string fields when fields is None).
    """
    out = dict(record)
    keys = list(out.keys()) if fields is None else [f for f in fields if f in out]
    for key in keys:
        if isinstance(out[key], str):
            out[key] = repair_text(out[key])
    return out


def normalization_report(original: str, repaired: str) -> Dict:
    """
    Which known sequences were present in original, given its repaired form.
    """
    if original == repaired:
        return {"had_corruption": False, "corrections": []}
    corrections: List[Dict[str, str]] = [
        {"from": corrupted, "to": correct}
        for corrupted, correct in MOJIBAKE_SEQUENCES + PUNCTUATION_FIXES
        if corrupted in original
    ]
    return {"had_corruption": True, "corrections": corrections}
