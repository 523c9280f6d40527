"""
Канонизация evidence (учебных доказательств) между фичами (cohort) и повторными импортами.

Одна и та же evidence в разных выгрузках называется по-разному:
  "GA1-220501046-AA1-EV01 Informe", "EV01 (Real)", "Evidencia 1"
Ключ строится из описания (detail) или имени и не зависит от порядка колонок.

Каталог активностей хранится двухуровнево: (ключ, фаза) -> {cohort -> Activity},
cohort "" - активность, общая для всех фич.
"""
from __future__ import annotations
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from .infer import EXCLUDED_HEADERS, COMPUTED_HEADERS
from .utils import norm_text, norm_header, norm_header_key, default_phase as configured_phase

logger = logging.getLogger(__name__)

EntryKey = Tuple[str, str]

_GA_FULL_RE = re.compile(r"ga\d+-\d+-aa\d+-ev\d+", re.I)
_AA_EV_RE = re.compile(r"aa\d+-ev\d+", re.I)
_EV_RE = re.compile(r"ev(idencia)?\s*(\d+)", re.I)
_NUM_RE = re.compile(r"(\d+)")
_EV_NAME_RE = re.compile(r"EV(\d+)", re.I)
_NATURAL_RE = re.compile(r"(\d+)")


def canonical_key(text: Any) -> str:
    """
    Ключ evidence (первое совпадение):
      GA#-#-AA#-EV#  -> "ga1-220501046-aa1-ev01"
      AA#-EV#        -> "aa1-ev01"
      ev<n> / evidencia <n> -> "ev<n>" (без ведущих нулей)
      первое число   -> "ev<n>"
      иначе нормализованный текст
    """
    s = norm_text(text)
    if not s:
        return str(text or "").strip()
    m = _GA_FULL_RE.search(s)
    if m:
        return m.group(0)
    m = _AA_EV_RE.search(s)
    if m:
        return m.group(0)
    m = _EV_RE.search(s)
    if m:
        return f"ev{int(m.group(2))}"
    m = _NUM_RE.search(s)
    if m:
        return f"ev{int(m.group(1))}"
    return s


def activity_key(activity: Dict[str, Any]) -> str:
    return canonical_key(activity.get("detail") or activity.get("name"))


def activity_phase(activity: Dict[str, Any]) -> str:
    # старые записи без фазы относятся к фазе по умолчанию
    return str(activity.get("phase") or configured_phase())


def ev_number(name: Any) -> int:
    m = _EV_NAME_RE.search(str(name or ""))
    return int(m.group(1)) if m else 0


def group_evidence_columns(columns: List[Dict[str, Any]], default_phase: Optional[str] = None) -> Dict[EntryKey, Dict[str, Any]]:
    """
    Сливает колонки одной evidence по ключу (canonical_key, фаза)
    Для каждой записи: первая score-колонка - источник числа, первая letter-колонка - буква,
    первая combined-колонка - запасной источник
    Порядок записей = порядок первого появления в файле
    """
    phase_default = default_phase or configured_phase()
    grouped: Dict[EntryKey, Dict[str, Any]] = {}
    for col in columns:
        base = str(col.get("base_name") or "").strip()
        if not base:
            continue
        key = (canonical_key(base), col.get("phase_hint") or phase_default)
        entry = grouped.get(key)
        if entry is None:
            entry = {
                "key": key[0],
                "phase": key[1],
                "base_name": base,
                "score_index": None,
                "letter_index": None,
                "fallback_index": None,
            }
            grouped[key] = entry
        slot = {"score": "score_index", "letter": "letter_index"}.get(col.get("kind"), "fallback_index")
        if entry[slot] is None:
            entry[slot] = col["index"]
    return grouped


def _new_id() -> str:
    return uuid.uuid4().hex


class EvidenceCanonicalizer:
    """
    Подбирает Activity для каждой evidence файла с учётом фичи студента.

    Изменения каталога не применяются на месте: новые и дополненные активности
    копятся в change-set (created / updated) и сохраняются вызывающим кодом.
    """

    def __init__(
        self,
        columns: List[Dict[str, Any]],
        catalog: List[Dict[str, Any]],
        cohort: Optional[str] = None,
        default_phase: Optional[str] = None,
        id_factory: Optional[Callable[[], str]] = None,
        now: Optional[str] = None,
    ):
        self.cohort = cohort or ""
        self.default_phase = default_phase or configured_phase()
        self.entries = group_evidence_columns(columns, self.default_phase)
        self._id_factory = id_factory or _new_id
        self._now = now or datetime.now().isoformat(timespec="seconds")

        self._map: Dict[EntryKey, Dict[str, Dict[str, Any]]] = {}
        self._next_ev: Dict[str, int] = {}
        self._created: List[Dict[str, Any]] = []
        self._updated: Dict[str, Dict[str, Any]] = {}

        for a in catalog:
            phase = activity_phase(a)
            key = (activity_key(a), phase)
            self._map.setdefault(key, {}).setdefault(str(a.get("cohort") or ""), dict(a))
            self._next_ev[phase] = max(self._next_ev.get(phase, 0), ev_number(a.get("name")))

    def _mint(self, entry_key: EntryKey) -> Dict[str, Any]:
        entry = self.entries[entry_key]
        phase = entry["phase"]
        num = self._next_ev.get(phase, 0) + 1
        self._next_ev[phase] = num
        activity = {
            "id": self._id_factory(),
            "name": f"EV{num:02d}",
            "cohort": self.cohort,
            "phase": phase,
            "detail": entry["base_name"],
            "max_score": 100,
            "created_at": self._now,
        }
        self._map.setdefault(entry_key, {})[self.cohort] = activity
        self._created.append(activity)
        logger.debug("Новая активность %s (%s, фича '%s'): %s", activity["name"], phase, self.cohort, entry["base_name"])
        return activity

    def activity_for(self, entry_key: EntryKey, student_cohort: Optional[str] = None) -> Dict[str, Any]:
        """
        Активность фичи студента -> общая (cohort "") -> новая (для фичи импорта)
        """
        by_cohort = self._map.get(entry_key, {})
        own = str(student_cohort or "")
        activity = by_cohort.get(own) if own else None
        if activity is None:
            activity = by_cohort.get("")
        if activity is None and self.cohort:
            activity = by_cohort.get(self.cohort)
        if activity is None:
            return self._mint(entry_key)

        if not activity.get("detail"):
            activity["detail"] = self.entries[entry_key]["base_name"]
            self._updated[activity["id"]] = activity
        return activity

    @property
    def created(self) -> List[Dict[str, Any]]:
        return list(self._created)

    @property
    def updated(self) -> List[Dict[str, Any]]:
        return list(self._updated.values())

    def changes(self) -> Dict[str, List[Dict[str, Any]]]:
        return {"created": self.created, "updated": self.updated}


def is_visible_activity(activity: Dict[str, Any]) -> bool:
    name = activity.get("name")
    return norm_header(name) not in EXCLUDED_HEADERS and norm_header_key(name) not in COMPUTED_HEADERS


def _natural_key(name: Any) -> List[Any]:
    # "EV2" < "EV10"
    parts = _NATURAL_RE.split(str(name or "").lower())
    return [int(p) if p.isdigit() else p for p in parts]


def unify_for_view(activities: List[Dict[str, Any]], phase: str, cohort: Optional[str] = None) -> Dict[str, Any]:
    """
    Активности одной фазы для отображения:
      - одна фича: по каждому ключу активность этой фичи, а если её нет - общая (cohort "")
      - все фичи: один представитель на ключ + by_canonical {ключ -> {cohort -> Activity}}
    """
    phase_match = [a for a in activities if activity_phase(a) == phase]
    if cohort:
        own: Dict[str, Dict[str, Any]] = {}
        shared: Dict[str, Dict[str, Any]] = {}
        for a in phase_match:
            a_cohort = str(a.get("cohort") or "")
            if a_cohort == cohort:
                own.setdefault(activity_key(a), a)
            elif not a_cohort:
                shared.setdefault(activity_key(a), a)
        # выбор по ключу, а не по фиче целиком: импорт фичи может дописать оценки в общие активности
        chosen = dict(shared)
        chosen.update(own)
        result = sorted(chosen.values(), key=lambda a: _natural_key(a.get("name")))
        return {
            "phase": phase,
            "activities": result,
            "visible": [a for a in result if is_visible_activity(a)],
            "by_canonical": None,
        }

    by_canonical: Dict[str, Dict[str, Dict[str, Any]]] = {}
    representative: Dict[str, Dict[str, Any]] = {}
    for a in phase_match:
        key = activity_key(a)
        by_canonical.setdefault(key, {})[str(a.get("cohort") or "")] = a
        representative.setdefault(key, a)

    unified = sorted(representative.values(), key=lambda a: _natural_key(a.get("name")))
    return {
        "phase": phase,
        "activities": unified,
        "visible": [a for a in unified if is_visible_activity(a)],
        "by_canonical": by_canonical,
    }


def resolve_for_student(view: Dict[str, Any], activity: Dict[str, Any], cohort: Optional[str]) -> Dict[str, Any]:
    # В режиме "все фичи" колонка показывает представителя; оценка студента лежит на активности его фичи
    by_canonical = view.get("by_canonical")
    if not by_canonical:
        return activity
    by_cohort = by_canonical.get(activity_key(activity)) or {}
    return by_cohort.get(str(cohort or "")) or by_cohort.get("") or activity
