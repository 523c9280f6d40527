from __future__ import annotations
import math
import re
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional, Tuple
from .utils import cell_text, pass_letter, fail_letter, passing_score as configured_passing_score

_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")


def parse_score(value: Any) -> Optional[float]:
    # "85", 85.0, "85,5", "85 pts" -> число; "A", "", None -> None
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
        return num if math.isfinite(num) else None
    raw = cell_text(value).strip()
    if not raw:
        return None
    normalized = _NON_NUMERIC_RE.sub("", raw.replace(",", ".", 1))
    if not normalized:
        return None
    try:
        num = float(normalized)
    except ValueError:
        return None
    return num if math.isfinite(num) else None


def parse_letter(value: Any) -> Optional[str]:
    s = cell_text(value).strip().upper()
    if s in (pass_letter(), fail_letter()):
        return s
    return None


def round_half_up(x: float) -> int:
    # round() в Python банковский: 69.5 -> 70 нужно и для 68.5 -> 69
    try:
        return int(Decimal(str(x)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return int(round(x))


def score_to_letter(score: float, threshold: Optional[float] = None) -> str:
    thr = configured_passing_score() if threshold is None else threshold
    return pass_letter() if score >= thr else fail_letter()


def extract_grade(raw_score: Any, raw_letter: Any = None, passing_score: Optional[float] = None) -> Optional[Tuple[int, str]]:
    """
    Ячейки одной evidence -> (score 0..100, letter) или None, если оценки нет
      - колонка буквы перекрывает букву, выведенную из числа
      - только буква (в колонке буквы или в самой ячейке) -> 100 / 0
      - число округляется (half up) и обрезается до [0, 100]
      - без буквы: >= порога -> A, иначе D
    """
    score = parse_score(raw_score)
    letter: Optional[str] = None
    if score is None:
        letter = parse_letter(raw_score)

    override = parse_letter(raw_letter)
    if override:
        letter = override

    if score is None and letter is None:
        return None
    if score is None:
        score = 100.0 if letter == pass_letter() else 0.0

    final_score = max(0, min(100, round_half_up(score)))
    final_letter = letter or score_to_letter(final_score, passing_score)
    return final_score, final_letter
