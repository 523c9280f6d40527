"""
Этот пакет содержит:
- загрузку выгрузок (CSV/XLSX)
- распознавание колонок (header classification)
- сопоставление строк со студентами реестра
- канонизацию evidence между фичами
- нормализацию дат последнего доступа
- итоговые оценки и таблицы для отображения
"""
from .ingest import read_table
from .infer import classify_headers, split_evidence_header, phase_from_header
from .dates import parse_access_datetime, days_since, is_more_recent
from .entity import build_roster_index, resolve_student, document_key, name_key
from .evidence import canonical_key, group_evidence_columns, EvidenceCanonicalizer, unify_for_view, resolve_for_student
from .extract import extract_grade, parse_score, parse_letter
from .scoring import compute_final, build_gradebook, build_access_table
from .pipeline import plan_import, import_file, summary_line
from .store import commit_import
from .errors import StructuralError

__all__ = [
    "read_table",
    "classify_headers",
    "split_evidence_header",
    "phase_from_header",
    "parse_access_datetime",
    "days_since",
    "is_more_recent",
    "build_roster_index",
    "resolve_student",
    "document_key",
    "name_key",
    "canonical_key",
    "group_evidence_columns",
    "EvidenceCanonicalizer",
    "unify_for_view",
    "resolve_for_student",
    "extract_grade",
    "parse_score",
    "parse_letter",
    "compute_final",
    "build_gradebook",
    "build_access_table",
    "plan_import",
    "import_file",
    "summary_line",
    "commit_import",
    "StructuralError",
]
