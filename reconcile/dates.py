"""
Разбор даты/времени последнего доступа из ячейки выгрузки.

Единый формат результата: "YYYY-MM-DD HH:mm:ss" (фиксированная ширина, нули слева),
поэтому строки можно сравнивать лексикографически.
"""
from __future__ import annotations
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional
from dateutil import parser as dtparser
from .utils import cell_text

CANONICAL_FMT = "%Y-%m-%d %H:%M:%S"

# Excel/Sheets: день 0 = 1899-12-30
EXCEL_EPOCH = datetime(1899, 12, 30)
SERIAL_MIN = 1000

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:\s+(\d{1,2}):(\d{2}):(\d{2}))?")
_DMY_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})(?:\s+(\d{1,2}):(\d{2}):(\d{2}))?")


def _from_serial(num: float) -> Optional[str]:
    # дробная часть - время суток; округляем до секунды (float-хвосты вида .9999)
    try:
        dt = EXCEL_EPOCH + timedelta(seconds=round(num * 86400))
    except OverflowError:
        return None
    return dt.strftime(CANONICAL_FMT)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        try:
            num = float(str(value).strip())
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    return num


def _build(y: str, m: str, d: str, hh: Optional[str], mm: Optional[str], ss: Optional[str], dayfirst: bool) -> Optional[str]:
    clock = f"{int(hh or 0):02d}:{int(mm or 0):02d}:{int(ss or 0):02d}"
    if dayfirst:
        txt = f"{d}/{m}/{y} {clock}"
    else:
        txt = f"{y}-{m}-{d} {clock}"
    try:
        dt = dtparser.parse(txt, dayfirst=dayfirst, yearfirst=not dayfirst)
    except (ValueError, OverflowError):
        # 31/02/2026, 2026-13-01 и т.п.
        return None
    # dateutil молча меняет день и месяц местами, если иначе дата невозможна
    if dt.day != int(d) or dt.month != int(m):
        return None
    return dt.strftime(CANONICAL_FMT)


def parse_access_datetime(value: Any) -> Optional[str]:
    """
    Приводит ячейку к "YYYY-MM-DD HH:mm:ss" или возвращает None.
    Правила (первое подошедшее):
      0) готовый datetime/date/Timestamp (openpyxl отдаёт даты так)
      a) числовой serial Excel (> 1000), дробная часть = время
      b) ISO: YYYY-M-D[ H:M:S]
      c) D/M/YYYY[ H:M:S] или D-M-YYYY[ H:M:S]
    None - это "нет даты", а не "0 дней".
    """
    if value is None:
        return None

    # pandas.Timestamp / datetime.datetime / datetime.date
    if isinstance(value, datetime):
        if value != value:  # NaT
            return None
        return value.strftime(CANONICAL_FMT)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).strftime(CANONICAL_FMT)

    txt = cell_text(value).strip()
    if not txt:
        return None

    num = _as_number(value)
    if num is not None and num > SERIAL_MIN:
        return _from_serial(num)

    m = _ISO_RE.match(txt)
    if m:
        y, mo, d, hh, mi, ss = m.groups()
        return _build(y, mo, d, hh, mi, ss, dayfirst=False)

    m = _DMY_RE.match(txt)
    if m:
        d, mo, y, hh, mi, ss = m.groups()
        return _build(y, mo, d, hh, mi, ss, dayfirst=True)

    return None


def is_more_recent(new: Optional[str], old: Optional[str]) -> bool:
    # формат фиксированной ширины - лексикографическое сравнение корректно
    if not new:
        return False
    return not old or new > old


def days_since(timestamp: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Целых дней от даты доступа до сегодня; None, если даты нет или она не читается."""
    if not timestamp:
        return None
    try:
        dt = datetime.strptime(timestamp, CANONICAL_FMT)
    except ValueError:
        return None
    today = today or date.today()
    return (today - dt.date()).days
