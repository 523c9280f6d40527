"""
Сопоставление строки выгрузки со студентом из реестра.

Каскад (первый успешный шаг побеждает, без оценки похожести):
  1) документ: только цифры, без ведущих нулей
  2) email в колонке документа (LMS использует почту как логин)
  3) логин студента (логин может сам быть документом или почтой)
  4) отдельная колонка почты
  5) логин == часть почты до '@'
  6) ФИО: точный ключ (прямой/обратный порядок), затем вхождение всех токенов
"""
from __future__ import annotations
import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple
from .utils import cell_text, norm_header

logger = logging.getLogger(__name__)

_SCI_RE = re.compile(r"^(\d+(?:\.\d+)?)[eE]([+-]?\d+)$")


def normalize_document(value: Any) -> str:
    """
    Ячейка -> текст документа
    Excel может вернуть число (78900.0) или научную запись ("7.89E+4") - восстанавливаем целое
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return ""
        return str(int(round(value)))
    s = cell_text(value).strip()
    if _SCI_RE.match(s):
        try:
            return str(int(round(float(s))))
        except (ValueError, OverflowError):
            return s
    # "78900.0" из CSV, выгруженного из Excel
    if re.fullmatch(r"\d+\.0+", s):
        return s.split(".", 1)[0]
    return s


def document_key(value: Any) -> str:
    """
    Ключ документа для сравнения: только цифры, без ведущих нулей
      "0078900", "78900", "78900cc", 7.89E+4 -> "78900"
    Без цифр или одни нули ("000") -> "" (ключа нет): заглушки вида "0" в реестре
    не должны склеивать разных студентов по документу
    """
    raw = normalize_document(value)
    digits = re.sub(r"\D", "", raw)
    return digits.lstrip("0")


def normalize_email(value: Any) -> str:
    return cell_text(value).strip().lower()


def name_key(value: Any) -> str:
    return norm_header(value)


def _full_name(first: str, last: str) -> str:
    return f"{first or ''} {last or ''}".strip()


def build_roster_index(students: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Индексы реестра: по документу, почте, логину, локальной части почты и вариантам ФИО
    При совпадении ключей побеждает первый студент в реестре (реестр не дедуплицируем)
    """
    by_doc: Dict[str, Dict[str, Any]] = {}
    by_email: Dict[str, Dict[str, Any]] = {}
    by_username: Dict[str, Dict[str, Any]] = {}
    by_local: Dict[str, Dict[str, Any]] = {}
    by_name: Dict[str, Dict[str, Any]] = {}
    name_keys: List[Tuple[str, Dict[str, Any]]] = []

    for s in students:
        base = document_key(s.get("document_number"))
        if base:
            if base in by_doc:
                logger.debug("Документ %s повторяется в реестре, оставлен %s", base, by_doc[base].get("id"))
            by_doc.setdefault(base, s)

        email = normalize_email(s.get("email"))
        if email:
            by_email.setdefault(email, s)
            local = email.split("@", 1)[0]
            if local:
                by_local.setdefault(local, s)

        uname = normalize_email(s.get("username"))
        if uname:
            by_username.setdefault(uname, s)

    # логин с цифрами индексируем и как документ, но не перебиваем настоящие документы
    for s in students:
        uname = normalize_email(s.get("username"))
        if uname and "@" not in uname:
            ubase = document_key(uname)
            if ubase:
                by_doc.setdefault(ubase, s)

    for s in students:
        first = cell_text(s.get("first_name")).strip()
        last = cell_text(s.get("last_name")).strip()
        for variant in (f"{first} {last}", f"{last} {first}", f"{last}, {first}"):
            k = name_key(variant)
            if k:
                by_name.setdefault(k, s)
        k = name_key(_full_name(first, last))
        if k:
            name_keys.append((k, s))

    return {
        "by_doc": by_doc,
        "by_email": by_email,
        "by_username": by_username,
        "by_local": by_local,
        "by_name": by_name,
        "name_keys": name_keys,
        "size": len(students),
    }


def row_identity_fields(row: List[Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    # Сырые значения колонок идентичности из строки (по индексам из classify_headers)
    def _get(role: str) -> Any:
        idx = schema.get(role)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    return {
        "document": _get("document"),
        "first_name": cell_text(_get("first_name")).strip(),
        "last_name": cell_text(_get("last_name")).strip(),
        "full_name": cell_text(_get("full_name")).strip(),
        "username": _get("username"),
        "email": cell_text(_get("email")).strip(),
    }


def _match_by_name(fields: Dict[str, Any], index: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], str]:
    first = fields.get("first_name") or ""
    last = fields.get("last_name") or ""
    to_match = fields.get("full_name") or _full_name(first, last)
    if not to_match.strip():
        return None, ""

    normalized = name_key(to_match)
    if not normalized:
        return None, ""
    reversed_key = name_key(f"{last} {first}")

    by_name = index["by_name"]
    student = by_name.get(normalized) or (by_name.get(reversed_key) if reversed_key else None)
    if student:
        return student, "name_exact"

    # все токены строки входят в ключ кандидата (или ключ кандидата целиком внутри строки)
    tokens = [t for t in normalized.split(" ") if t]
    for key, cand in index["name_keys"]:
        if all(t in key for t in tokens) or key in normalized:
            return cand, "name_tokens"
    return None, ""


def resolve_student(fields: Dict[str, Any], index: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], str]:
    """
    Возвращает (student, method) или (None, "")
    method - шаг каскада, на котором нашли (для аудита импорта)
    """
    doc_raw = normalize_document(fields.get("document"))
    doc_base = document_key(doc_raw)
    doc_norm = norm_text_lower(doc_raw)
    uname = norm_text_lower(normalize_document(fields.get("username")))

    # 1) документ
    if doc_base:
        s = index["by_doc"].get(doc_base)
        if s:
            return s, "document"

    # 2) почта в колонке документа
    if "@" in doc_norm:
        s = index["by_email"].get(doc_norm)
        if s:
            return s, "email_in_document"

    # 3) логин (и колонка документа как логин)
    for cand in (uname, doc_norm):
        if not cand:
            continue
        s = index["by_username"].get(cand)
        if s:
            return s, "username"
    if uname:
        if "@" in uname:
            s = index["by_email"].get(uname)
        else:
            ubase = document_key(uname)
            s = index["by_doc"].get(ubase) if ubase else None
        if s:
            return s, "username"

    # 4) отдельная колонка почты
    email = normalize_email(fields.get("email"))
    if email:
        s = index["by_email"].get(email) or index["by_username"].get(email)
        if s:
            return s, "secondary_email"

    # 5) логин LMS = часть почты до '@'
    local = uname or doc_norm
    if local and "@" not in local:
        s = index["by_local"].get(local)
        if s:
            return s, "email_local_part"

    # 6) ФИО
    return _match_by_name(fields, index)


def norm_text_lower(value: str) -> str:
    return (value or "").strip().lower()
