import os
import re
import json
import logging
import unicodedata
from pathlib import Path
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"

APPDATA = os.environ.get("APPDATA")
if APPDATA:
    USER_DATA_DIR = Path(APPDATA) / "StudentReconciler" / "data"
else:
    USER_DATA_DIR = DEFAULT_DATA_DIR  # fallback

def load_json(path: Path, default: Any):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except json.JSONDecodeError as e:
        logger.warning("Не удалось прочитать %s: %s", path, e)
        return default

def save_json(path: Path, obj: Any):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)

_DASH_CHARS_RE = re.compile(r"[\u2010\u2011\u2012\u2013\u2014\u2212]")
_NBSP_RE = re.compile(r"[\u00A0\u2007\u202F]")  # NBSP варианты


def strip_accents(s: str) -> str:
    # "Último" -> "Ultimo", "Inducción" -> "Induccion"
    return "".join(ch for ch in unicodedata.normalize("NFD", s) if not unicodedata.combining(ch))


def cell_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v != v:
        return ""
    s = str(v)
    if not s or s.lower() == "nan":
        return ""
    return s


def norm_text(s: Any) -> str:
    """
    Универсальная нормализация текста:
    - lower
    - без диакритики (á -> a, ñ -> n)
    - BOM/неразрывные пробелы
    - внешние кавычки
    - все виды тире -> '-'
    - схлопывание пробелов
    """
    s = cell_text(s)
    if not s:
        return ""

    # частые "невидимые" символы CSV/Excel
    s = s.replace("\ufeff", "")
    s = _NBSP_RE.sub(" ", s)
    s = s.strip()
    # убрать внешние кавычки
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ('"', "'"):
        s = s[1:-1].strip()
    s = strip_accents(s.lower())
    # разные тире/дефисы в один стандарт
    s = _DASH_CHARS_RE.sub("-", s)
    # схлопнуть пробелы
    s = re.sub(r"\s+", " ", s).strip()
    return s

def norm_header(s: Any) -> str:
    """
    Нормализация заголовка колонки / ФИО для сравнения:
    - основана на norm_text
    - всё, кроме букв/цифр, превращается в пробел
    "Último acceso (Real)" -> "ultimo acceso real", "Nombre(s)" -> "nombre s"
    """
    s = norm_text(s)
    if not s:
        return ""
    s = re.sub(r"[^a-z0-9 ]", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s

def norm_header_key(s: Any) -> str:
    # "RAP 1" и "rap1" дают один ключ
    return norm_header(s).replace(" ", "")

def rules_path() -> Path:
    return DEFAULT_DATA_DIR / "rules.json"

RULES = load_json(rules_path(), {})

DEFAULT_PHASES: List[str] = [
    "Fase Inducción",
    "Fase 1: Análisis",
    "Fase 2: Planeación",
    "Fase 3: Ejecución",
    "Fase 4: Evaluación",
]

def phases() -> List[str]:
    lst = RULES.get("phases") or DEFAULT_PHASES
    return [str(p) for p in lst]

def default_phase() -> str:
    lst = phases()
    idx = int(RULES.get("default_phase_index", 1))
    if 0 <= idx < len(lst):
        return lst[idx]
    return lst[0]

def passing_score() -> float:
    return float(RULES.get("passing_score", 70))

def pass_letter() -> str:
    return str(RULES.get("pass_letter", "A")).upper()

def fail_letter() -> str:
    return str(RULES.get("fail_letter", "D")).upper()

def data_dir(override: Optional[Path] = None) -> Path:
    p = Path(override) if override is not None else USER_DATA_DIR
    p.mkdir(parents=True, exist_ok=True)
    return p

def roster_path(base: Optional[Path] = None) -> Path:
    return data_dir(base) / "students.json"

def activities_path(base: Optional[Path] = None) -> Path:
    return data_dir(base) / "grade_activities.json"

def grades_path(base: Optional[Path] = None) -> Path:
    return data_dir(base) / "grades.json"

def access_path(base: Optional[Path] = None) -> Path:
    return data_dir(base) / "lms_last_access.json"
