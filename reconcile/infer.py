from __future__ import annotations
import re
from typing import Dict, Any, List, Optional, Tuple
from .utils import RULES, norm_header, norm_header_key, phases

# Заголовки, которые никогда не считаются ФИО/доказательством (evidence), даже если похожи ("nombre de usuario" начинается с "nombre ")
EXCLUDED_HEADERS = set(RULES.get("excluded_headers", [
    "nombre de usuario",
    "usuario",
    "username",
    "institucion",
    "departamento",
    "correo electronico",
    "correo",
    "email",
    "ultima descarga de este curso",
    "estado",
    "ficha",
    "grupo",
    "juicios evaluativos",
    "tipo de documento",
    "tipo documento",
    "programa",
    "telefono",
    "celular",
    "grupos",
    "rol",
    "roles",
    "pais",
    "ciudad",
    "numero de id",
    "id",
    "total del curso",
]))

# Вычисляемые колонки собственного отчёта: при повторной загрузке не evidence
COMPUTED_HEADERS = set(RULES.get("computed_headers", [
    "pendientes", "promedio", "final", "rap1", "rap2", "rap3", "rap4", "rap5",
]))

# Правило роли: (роль, точные совпадения, вхождения, запрещённые подстроки, похоже_на_ФИО)
# Порядок важен: раньше стоящая роль забирает колонку первой
RoleRule = Tuple[str, Tuple[str, ...], Tuple[str, ...], Tuple[str, ...], bool]

ROLE_RULES: List[RoleRule] = [
    ("username",
     ("nombre de usuario", "usuario", "username", "user name", "login"),
     ("nombre de usuario", "usuario", "username"),
     ("correo", "email", "completo"),
     False),
    ("email",
     ("correo electronico", "correo", "email", "e mail", "correo institucional", "correo personal"),
     ("correo electronico", "correo", "email", "e mail"),
     ("nombre",),
     False),
    ("document",
     ("documento", "numero de documento", "no documento", "n documento", "doc", "identificacion",
      "numero de identificacion", "cedula", "documento de identidad"),
     ("document", "identificacion", "cedula", "identidad"),
     ("tipo",),
     False),
    ("access_date",
     ("ultimo acceso", "ultimo acceso al curso", "ultimo ingreso", "last access", "fecha"),
     ("ultimo acceso", "ultimo ingreso", "last access", "fecha ultimo", "fecha"),
     ("nacimiento", "nombre"),
     False),
    ("full_name",
     ("nombre completo", "aprendiz", "nombre del aprendiz", "nombres y apellidos", "estudiante"),
     ("nombre completo", "aprendiz", "nombres y apellidos"),
     ("usuario",),
     True),
    ("last_name",
     ("apellidos", "apellido", "apellido s"),
     ("apellido",),
     ("usuario",),
     True),
    ("first_name",
     ("nombres", "nombre", "nombre s", "first name"),
     ("nombre",),
     ("usuario", "completo", "apellido"),
     True),
]

IDENTITY_ROLES = ("document", "username", "email", "full_name", "first_name", "last_name")

# Ключевые слова фаз (после norm_header, т.е. без диакритики)
PHASE_KEYWORDS = ["induccion", "analisis", "planeacion", "ejecucion", "evaluacion"]

_LETTER_TAIL_RE = re.compile(r"\bletra\s*\)?\s*$", re.I)
_SCORE_TAIL_RE = re.compile(r"\b(real|promedio|nota|numero|score)\s*\)?\s*$", re.I)
_LETTER_STRIP_RE = re.compile(r"\s*[\(\-]?\s*\bletra\s*\)?\s*$", re.I)
_SCORE_STRIP_RE = re.compile(r"\s*[\(\-]?\s*\b(real|promedio|nota|numero|score)\s*\)?\s*$", re.I)
_PAREN_KIND_RE = re.compile(r"^(.+?)\s*\((real|letra)\)\s*$", re.I)
_EVIDENCE_CODE_RE = re.compile(r"\b(ev|evidencia|aa|ga)\s*\d")


def _rule_matches(h: str, rule: RoleRule, exact_only: bool) -> bool:
    _, exact, contains, avoid, name_like = rule
    if not h:
        return False
    if name_like and h in EXCLUDED_HEADERS:
        return False
    if h in exact:
        return True
    if exact_only:
        return False
    # "GA1-...-AA1-EV01 Documento técnico" - это evidence, а не колонка документа
    if _EVIDENCE_CODE_RE.search(h):
        return False
    if any(a in h for a in avoid):
        return False
    return any(k in h for k in contains)


def split_evidence_header(header: Any) -> Tuple[str, str]:
    """
    Колонка evidence приходит либо парой (число + буква), либо одной колонкой
    Возвращает (base_name, kind), kind: score / letter / combined
      "EV01 (Real)"  -> ("EV01", "score")
      "EV01 - Letra" -> ("EV01", "letter")
      "EV01"         -> ("EV01", "combined")  - в ячейке может быть и буква, и число
    """
    raw = str(header or "").strip()
    if not raw:
        return raw, "combined"

    ends_letter = bool(_LETTER_TAIL_RE.search(raw))
    ends_score = bool(_SCORE_TAIL_RE.search(raw))

    if ends_letter and not ends_score:
        base = _LETTER_STRIP_RE.sub("", raw).strip()
        return (base, "letter") if base else (raw, "combined")
    if ends_score:
        base = _SCORE_STRIP_RE.sub("", raw).strip()
        return (base, "score") if base else (raw, "combined")

    m = _PAREN_KIND_RE.match(raw)
    if m:
        kind = "letter" if m.group(2).lower() == "letra" else "score"
        return m.group(1).strip(), kind

    return raw, "combined"


def phase_from_header(header: Any) -> Optional[str]:
    h = norm_header(header)
    labels = phases()
    for i, kw in enumerate(PHASE_KEYWORDS):
        if kw in h and i < len(labels):
            return labels[i]
    return None


def is_evidence_header(header: Any) -> bool:
    h = norm_header(header)
    if not h:
        return False
    if h in EXCLUDED_HEADERS:
        return False
    if norm_header_key(header) in COMPUTED_HEADERS:
        return False
    # "Total del curso (Real)" - итог платформы, а не evidence
    base, _ = split_evidence_header(header)
    if norm_header(base) in EXCLUDED_HEADERS:
        return False
    return True


def classify_headers(headers: List[Any]) -> Dict[str, Any]:
    """
    Назначает колонкам роли по строке заголовков.
    Для каждой роли: сначала точные совпадения, потом вхождения; колонка занимает не больше одной роли
    Остальные (не исключённые, не вычисляемые, непустые) - evidence
    """
    normalized = [norm_header(h) for h in headers]
    roles: Dict[str, Optional[int]] = {rule[0]: None for rule in ROLE_RULES}
    claimed: set[int] = set()

    for rule in ROLE_RULES:
        role = rule[0]
        for exact_only in (True, False):
            for i, h in enumerate(normalized):
                if i in claimed:
                    continue
                if _rule_matches(h, rule, exact_only):
                    roles[role] = i
                    claimed.add(i)
                    break
            if roles[role] is not None:
                break

    evidence: List[Dict[str, Any]] = []
    for i, header in enumerate(headers):
        if i in claimed or not is_evidence_header(header):
            continue
        raw = str(header).strip()
        base_name, kind = split_evidence_header(raw)
        if not base_name:
            continue
        evidence.append({
            "index": i,
            "header": raw,
            "base_name": base_name,
            "kind": kind,
            "phase_hint": phase_from_header(raw),
        })

    schema: Dict[str, Any] = dict(roles)
    schema["evidence"] = evidence
    schema["headers"] = [str(h if h is not None else "").strip() for h in headers]
    schema["recognized"] = any(roles.get(r) is not None for r in IDENTITY_ROLES)
    return schema
