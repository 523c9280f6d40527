"""
Импорт выгрузки: файл -> строки -> план изменений -> (опционально) сохранение.

План строится целиком в памяти, без I/O; сохранение - отдельный шаг (store.commit_import),
поэтому dry_run показывает результат, ничего не меняя.
"""
from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from .dates import parse_access_datetime, is_more_recent
from .entity import build_roster_index, resolve_student, row_identity_fields, normalize_document
from .errors import StructuralError, ROW_UNMATCHED, ROW_DATE_INVALID
from .evidence import EvidenceCanonicalizer
from .extract import extract_grade
from .infer import classify_headers
from .ingest import read_table
from .store import load_students, load_activities, load_access, commit_import
from .utils import cell_text, default_phase, passing_score

logger = logging.getLogger(__name__)


def _cell(row: List[Any], idx: Optional[int]) -> Any:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def _is_blank(row: List[Any]) -> bool:
    return all(not cell_text(v).strip() for v in row)


def _row_label(fields: Dict[str, Any]) -> str:
    # чем показать строку в списке "sin match"
    doc = normalize_document(fields.get("document"))
    if doc:
        return doc
    if fields.get("full_name"):
        return fields["full_name"]
    name = f"{fields.get('first_name') or ''} {fields.get('last_name') or ''}".strip()
    if name:
        return name
    return cell_text(fields.get("username")).strip() or fields.get("email") or ""


def plan_import(
    rows: List[List[Any]],
    students: List[Dict[str, Any]],
    activities: List[Dict[str, Any]],
    access: Dict[str, str],
    *,
    cohort: Optional[str] = None,
    phase: Optional[str] = None,
    source: str = "",
    id_factory: Optional[Callable[[], str]] = None,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Строит план импорта. Ничего не сохраняет.

    Каждая непустая строка данных попадает ровно в одну корзину:
      unmatched - студент не найден
      no_date   - найден, в файле есть колонка даты, но дата не читается (оценки строки применяются)
      updated   - найден и обработан
    Полностью пустые строки пропускаются и не считаются.
    """
    if not rows:
        raise StructuralError("El archivo no contiene filas.")

    schema = classify_headers(rows[0])
    if not schema["recognized"]:
        raise StructuralError(
            "No se encontró una columna de identificación (documento, usuario, correo o nombre)."
        )
    date_idx = schema["access_date"]
    if date_idx is None and not schema["evidence"]:
        raise StructuralError("No se encontraron columnas de fecha de acceso ni de actividades.")

    now = now or datetime.now().isoformat(timespec="seconds")
    scope = [s for s in students if not cohort or str(s.get("cohort") or "") == cohort]
    index = build_roster_index(scope)
    canon = EvidenceCanonicalizer(
        schema["evidence"], activities,
        cohort=cohort, default_phase=phase or default_phase(),
        id_factory=id_factory, now=now,
    )
    threshold = passing_score()

    result = {"updated": 0, "unmatched": 0, "no_date": 0, "rows": 0}
    grade_entries: Dict[Any, Dict[str, Any]] = {}
    access_updates: Dict[str, str] = {}
    issues: List[Dict[str, Any]] = []
    methods: Dict[str, int] = {}

    for line_no, row in enumerate(rows[1:], start=2):
        if _is_blank(row):
            continue
        result["rows"] += 1

        fields = row_identity_fields(row, schema)
        student, method = resolve_student(fields, index)
        if student is None:
            label = _row_label(fields)
            result["unmatched"] += 1
            issues.append({"row": line_no, "code": ROW_UNMATCHED, "value": label})
            logger.warning("%s, строка %d: студент не найден (%s)", source or "import", line_no, label)
            continue
        methods[method] = methods.get(method, 0) + 1
        logger.debug("Строка %d -> %s (%s)", line_no, student.get("id"), method)
        sid = str(student.get("id"))

        for entry_key, entry in canon.entries.items():
            score_idx = entry["score_index"] if entry["score_index"] is not None else entry["fallback_index"]
            grade = extract_grade(_cell(row, score_idx), _cell(row, entry["letter_index"]), threshold)
            if grade is None:
                continue
            activity = canon.activity_for(entry_key, student.get("cohort"))
            score, letter = grade
            grade_entries[(sid, activity["id"])] = {
                "student_id": sid,
                "activity_id": activity["id"],
                "score": score,
                "letter": letter,
                "updated_at": now,
            }

        if date_idx is not None:
            raw = _cell(row, date_idx)
            ts = parse_access_datetime(raw)
            if ts is None:
                result["no_date"] += 1
                issues.append({"row": line_no, "code": ROW_DATE_INVALID, "value": cell_text(raw).strip()})
                continue
            if is_more_recent(ts, access_updates.get(sid) or access.get(sid)):
                access_updates[sid] = ts
        result["updated"] += 1

    plan = {
        "result": result,
        "activities_created": canon.created,
        "activities_updated": canon.updated,
        "grade_entries": list(grade_entries.values()),
        "access_updates": access_updates,
        "issues": issues,
        "methods": methods,
        "schema": schema,
        "source": source,
    }
    logger.info("%s: %s", source or "import", summary_line(result))
    return plan


def summary_line(result: Dict[str, int]) -> str:
    return (
        f"Actualizados: {result.get('updated', 0)} · "
        f"sin fecha: {result.get('no_date', 0)} · "
        f"sin match: {result.get('unmatched', 0)}."
    )


def import_file(
    data: bytes,
    filename: str,
    *,
    data_dir: Optional[Path] = None,
    cohort: Optional[str] = None,
    phase: Optional[str] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Полный цикл: декодирование -> загрузка хранилищ -> план -> сохранение (если не dry_run)
    StructuralError поднимается до любых изменений
    """
    rows = read_table(data, filename)
    plan = plan_import(
        rows,
        load_students(data_dir),
        load_activities(data_dir),
        load_access(data_dir),
        cohort=cohort,
        phase=phase,
        source=filename,
    )
    if dry_run:
        plan["committed"] = None
    else:
        plan["committed"] = commit_import(plan, data_dir)
    return plan
