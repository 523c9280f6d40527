from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from .dates import is_more_recent
from .utils import load_json, save_json, roster_path, activities_path, grades_path, access_path

logger = logging.getLogger(__name__)


def _as_int(x: Any, default: int = 0) -> int:
    try:
        if x is None:
            return default
        if isinstance(x, (int, float)):
            return int(x)
        s = str(x).replace(",", ".").strip()
        return int(float(s)) if s else default
    except (ValueError, OverflowError):
        return default


def _s(e: Dict[str, Any], *keys: str) -> str:
    # первое непустое из нескольких имён поля (старые выгрузки писали camelCase)
    for k in keys:
        v = e.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def _normalize_student(e: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(e, dict):
        return {}
    out = dict(e)
    out.update({
        "id": _s(e, "id", "student_id"),
        "document_number": _s(e, "document_number", "documentNumber", "documento"),
        "first_name": _s(e, "first_name", "firstName", "nombres"),
        "last_name": _s(e, "last_name", "lastName", "apellidos"),
        "email": _s(e, "email", "correo"),
        "username": _s(e, "username", "usuario"),
        "cohort": _s(e, "cohort", "group", "ficha"),
        "status": _s(e, "status", "estado") or "Formación",
    })
    return out


def _normalize_activity(e: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(e, dict):
        return {}
    out = dict(e)
    out.update({
        "id": _s(e, "id"),
        "name": _s(e, "name"),
        "cohort": _s(e, "cohort", "group"),
        "phase": _s(e, "phase"),
        "detail": _s(e, "detail"),
        "max_score": _as_int(e.get("max_score", e.get("maxScore", 100)), 100),
        "created_at": _s(e, "created_at", "createdAt"),
    })
    return out


def _normalize_grade(e: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(e, dict):
        return {}
    return {
        "student_id": _s(e, "student_id", "studentId"),
        "activity_id": _s(e, "activity_id", "activityId"),
        "score": max(0, min(100, _as_int(e.get("score"), 0))),
        "letter": _s(e, "letter").upper(),
        "updated_at": _s(e, "updated_at", "updatedAt"),
    }


def _load_list(path: Path) -> List[Any]:
    obj = load_json(path, [])
    if not isinstance(obj, list):
        logger.warning("Ожидался список в %s, получено %s", path, type(obj).__name__)
        return []
    return obj


def load_students(base: Optional[Path] = None) -> List[Dict[str, Any]]:
    # Реестр только читаем; записи без id пропускаем
    out = []
    for item in _load_list(roster_path(base)):
        s = _normalize_student(item)
        if s and s["id"]:
            out.append(s)
    return out


def load_activities(base: Optional[Path] = None) -> List[Dict[str, Any]]:
    out = []
    for item in _load_list(activities_path(base)):
        a = _normalize_activity(item)
        if a and a["id"]:
            out.append(a)
    return out


def save_activities(activities: List[Dict[str, Any]], base: Optional[Path] = None) -> None:
    # Полная перезапись каталога
    normed = [a for a in (_normalize_activity(x) for x in activities or []) if a and a["id"]]
    save_json(activities_path(base), normed)


def load_grades(base: Optional[Path] = None) -> List[Dict[str, Any]]:
    out = []
    for item in _load_list(grades_path(base)):
        g = _normalize_grade(item)
        if g and g["student_id"] and g["activity_id"]:
            out.append(g)
    return out


def upsert_grades(entries: List[Dict[str, Any]], base: Optional[Path] = None) -> int:
    """
    Upsert по (student_id, activity_id), последняя запись побеждает
    Запись с теми же score/letter не переписывается (updated_at не меняется)
    Возвращает число изменённых записей; файл пишется только если изменения есть
    """
    current = {(g["student_id"], g["activity_id"]): g for g in load_grades(base)}
    changed = 0
    for e in entries or []:
        g = _normalize_grade(e)
        if not g or not g["student_id"] or not g["activity_id"]:
            continue
        key = (g["student_id"], g["activity_id"])
        old = current.get(key)
        if old is not None and old["score"] == g["score"] and old["letter"] == g["letter"]:
            continue
        current[key] = g
        changed += 1
    if changed:
        save_json(grades_path(base), list(current.values()))
    return changed


def load_access(base: Optional[Path] = None) -> Dict[str, str]:
    obj = load_json(access_path(base), {})
    if not isinstance(obj, dict):
        logger.warning("Ожидался словарь в %s", access_path(base))
        return {}
    return {str(k): str(v) for k, v in obj.items() if v}


def upsert_access(updates: Dict[str, str], base: Optional[Path] = None) -> int:
    # только более свежая дата перезаписывает сохранённую
    current = load_access(base)
    changed = 0
    for sid, ts in (updates or {}).items():
        if is_more_recent(ts, current.get(str(sid))):
            current[str(sid)] = ts
            changed += 1
    if changed:
        save_json(access_path(base), current)
    return changed


def commit_import(plan: Dict[str, Any], data_dir: Optional[Path] = None) -> Dict[str, int]:
    """
    Сохраняет план импорта одним пакетом: активности -> оценки -> доступы
    Повторный коммит того же плана ничего не меняет
    """
    created = plan.get("activities_created") or []
    updated = plan.get("activities_updated") or []
    activities_changed = 0
    if created or updated:
        catalog = load_activities(data_dir)
        by_id = {a["id"]: i for i, a in enumerate(catalog)}
        for a in updated:
            i = by_id.get(a.get("id"))
            if i is not None and catalog[i] != _normalize_activity(a):
                catalog[i] = a
                activities_changed += 1
        for a in created:
            if a.get("id") in by_id:
                continue
            by_id[a["id"]] = len(catalog)
            catalog.append(a)
            activities_changed += 1
        if activities_changed:
            save_activities(catalog, data_dir)

    grades_changed = upsert_grades(plan.get("grade_entries") or [], data_dir)
    access_changed = upsert_access(plan.get("access_updates") or {}, data_dir)
    logger.info(
        "Импорт сохранён: активностей %d, оценок %d, доступов %d",
        activities_changed, grades_changed, access_changed,
    )
    return {"activities": activities_changed, "grades": grades_changed, "access": access_changed}
