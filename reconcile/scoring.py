from __future__ import annotations
import logging
from datetime import date
from typing import Dict, Any, List, Optional, Tuple
import pandas as pd
from .dates import days_since
from .evidence import unify_for_view, resolve_for_student
from .utils import phases as configured_phases, pass_letter, fail_letter

logger = logging.getLogger(__name__)

GradeMap = Dict[Tuple[str, str], Dict[str, Any]]

IDENTITY_COLUMNS = ["Documento", "Apellidos", "Nombres", "Estado", "Ficha"]
TOTAL_COLUMNS = ["Pendientes", "Promedio", "FINAL"]


def grade_map_from(grades: List[Dict[str, Any]]) -> GradeMap:
    return {(str(g.get("student_id")), str(g.get("activity_id"))): g for g in grades}


def compute_final(student: Dict[str, Any], views: List[Dict[str, Any]], grade_map: GradeMap) -> Dict[str, Any]:
    """
    Итог студента по видимым активностям всех фаз
      pending      - нет оценки или буква не "A"
      average      - сумма баллов / число активностей (отсутствующие = 0); None, если оценок нет совсем
      final_letter - "A" только если оценены все активности и все сданы, иначе "D"
    Без видимых активностей: pending 0, average None, final_letter None
    """
    total = sum(len(v["visible"]) for v in views)
    if total == 0:
        return {"pending": 0, "average": None, "final_letter": None}

    sid = str(student.get("id"))
    cohort = student.get("cohort")
    missing = 0
    pending = 0
    acc = 0.0
    all_passed = True
    for view in views:
        for activity in view["visible"]:
            resolved = resolve_for_student(view, activity, cohort)
            g = grade_map.get((sid, str(resolved.get("id"))))
            if g is None:
                missing += 1
                pending += 1
                all_passed = False
                continue
            acc += float(g.get("score") or 0)
            if g.get("letter") != pass_letter():
                pending += 1
                all_passed = False

    average = None if missing == total else acc / total
    return {
        "pending": pending,
        "average": average,
        "final_letter": pass_letter() if all_passed else fail_letter(),
    }


def _column_labels(views: List[Dict[str, Any]]) -> List[Tuple[Dict[str, Any], Dict[str, Any], str]]:
    # EV01 может быть в нескольких фазах - тогда подписываем фазой
    names: Dict[str, int] = {}
    for v in views:
        for a in v["visible"]:
            n = str(a.get("name") or "")
            names[n] = names.get(n, 0) + 1
    out = []
    for v in views:
        for a in v["visible"]:
            n = str(a.get("name") or "")
            label = n if names[n] == 1 else f"{n} · {v['phase']}"
            out.append((v, a, label))
    return out


def _sort_students(students: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(students, key=lambda s: (str(s.get("last_name") or "").lower(), str(s.get("first_name") or "").lower()))


def build_gradebook(
    students: List[Dict[str, Any]],
    activities: List[Dict[str, Any]],
    grades: List[Dict[str, Any]],
    cohort: Optional[str] = None,
    phases: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Отчёт по оценкам: Documento, Apellidos, Nombres, Estado, Ficha, по колонке на активность,
    Pendientes, Promedio, FINAL
    cohort=None - все фичи (колонки объединены по ключу evidence)
    """
    phase_list = phases or configured_phases()
    views = [unify_for_view(activities, p, cohort) for p in phase_list]
    columns = _column_labels(views)
    gmap = grade_map_from(grades)

    scope = [s for s in students if not cohort or str(s.get("cohort") or "") == cohort]
    rows = []
    for s in _sort_students(scope):
        row: Dict[str, Any] = {
            "Documento": s.get("document_number", ""),
            "Apellidos": s.get("last_name", ""),
            "Nombres": s.get("first_name", ""),
            "Estado": s.get("status") or "Formación",
            "Ficha": s.get("cohort", ""),
        }
        for view, activity, label in columns:
            resolved = resolve_for_student(view, activity, s.get("cohort"))
            g = gmap.get((str(s.get("id")), str(resolved.get("id"))))
            row[label] = "" if g is None else g.get("score")
        fin = compute_final(s, views, gmap)
        row["Pendientes"] = fin["pending"]
        row["Promedio"] = "" if fin["average"] is None else round(fin["average"], 2)
        row["FINAL"] = fin["final_letter"] or ""
        rows.append(row)

    all_columns = IDENTITY_COLUMNS + [label for _, _, label in columns] + TOTAL_COLUMNS
    logger.debug("Отчёт по оценкам: %d студентов, %d активностей", len(rows), len(columns))
    return pd.DataFrame(rows, columns=all_columns)


def build_access_table(
    students: List[Dict[str, Any]],
    access: Dict[str, str],
    today: Optional[date] = None,
) -> pd.DataFrame:
    # "Días sin acceso" пустое (а не 0), если последнего доступа нет
    rows = []
    for s in _sort_students(students):
        last = access.get(str(s.get("id")))
        days = days_since(last, today)
        rows.append({
            "Documento": s.get("document_number", ""),
            "Apellidos": s.get("last_name", ""),
            "Nombres": s.get("first_name", ""),
            "Ficha": s.get("cohort", ""),
            "Último acceso": last or "",
            "Días sin acceso": "" if days is None else days,
        })
    return pd.DataFrame(rows, columns=["Documento", "Apellidos", "Nombres", "Ficha", "Último acceso", "Días sin acceso"])
