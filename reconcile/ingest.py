from __future__ import annotations
import csv
import logging
from io import BytesIO, StringIO
from typing import List, Any, Optional
import numpy as np
import pandas as pd
from openpyxl import load_workbook
from .errors import StructuralError

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")
TEXT_EXTENSIONS = (".csv", ".txt", ".tsv")
# =========================

# Excel: читаем лист как матрицу, разворачиваем merged cells
# =========================
def _sheet_to_matrix_with_merged(wb_bytes: bytes, sheet_name: Optional[str] = None) -> List[List[Any]]:
    wb = load_workbook(BytesIO(wb_bytes), read_only=False, data_only=True)
    ws = wb[sheet_name] if sheet_name else wb.worksheets[0]
    merged_map = {}
    for r in ws.merged_cells.ranges:
        min_col, min_row, max_col, max_row = r.bounds
        top_val = ws.cell(min_row, min_col).value
        for rr in range(min_row, max_row + 1):
            for cc in range(min_col, max_col + 1):
                merged_map[(rr, cc)] = top_val

    rows = []
    for r in range(1, ws.max_row + 1):
        row_vals = []
        for c in range(1, ws.max_column + 1):
            v = ws.cell(r, c).value
            if (r, c) in merged_map and (v is None or str(v).strip() == ""):
                v = merged_map[(r, c)]
            row_vals.append(v)
        rows.append(row_vals)
    return rows


def _read_excel_bytes(data: bytes) -> List[List[Any]]:
    try:
        return _sheet_to_matrix_with_merged(data)
    except (KeyError, ValueError, IndexError) as e:
        logger.warning("openpyxl не смог разобрать лист (%s), пробуем pandas", e)
    # fallback: первый лист через pandas, NaN -> None
    df = pd.read_excel(BytesIO(data), sheet_name=0, header=None, dtype=object)
    df = df.replace({np.nan: None})
    return df.values.tolist()
# =========================

# CSV: устойчивое чтение из bytes
# =========================
def _decode_sample(data: bytes, enc: str, limit: int = 65536) -> str:
    return data[:limit].decode(enc, errors="replace")


def _guess_delimiter(sample_text: str) -> str:
    # LMS: ',' или ';' (es/ru локали), иногда табы
    try:
        dialect = csv.Sniffer().sniff(sample_text, delimiters=";,\t|")
        if dialect.delimiter:
            return dialect.delimiter
    except csv.Error:
        pass

    # fallback по количеству в первых строках
    candidates = [";", ",", "\t", "|"]
    lines = [ln for ln in sample_text.splitlines() if ln.strip()][:20]
    if not lines:
        return ","

    scores = {}
    for d in candidates:
        cnts = [ln.count(d) for ln in lines]
        scores[d] = sum(cnts) / max(1, len(cnts))

    best = max(scores.items(), key=lambda x: x[1])[0]
    return best if scores.get(best, 0) > 0 else ","


def _max_fields(text: str, delim: str) -> int:
    # строки с лишними полями (хвостовая запятая) не должны ронять весь файл
    width = 0
    for rec in csv.reader(StringIO(text), delimiter=delim):
        width = max(width, len(rec))
    return width


def _read_with(data: bytes, enc: str, delim: str) -> pd.DataFrame:
    width = _max_fields(data.decode(enc), delim)
    if width == 0:
        raise pd.errors.EmptyDataError("No columns to parse from file")
    df = pd.read_csv(
        BytesIO(data),
        header=None,
        names=list(range(width)),
        sep=delim,
        engine="python",
        encoding=enc,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )
    # короткие строки дополняются пустыми ячейками
    return df.fillna("")


def _read_csv_bytes(data: bytes) -> pd.DataFrame:
    # Все ячейки как текст: ведущие нули документа ("0078900") не теряются
    encodings = ["utf-8-sig", "utf-8", "cp1252", "latin-1"]
    last_err: Exception | None = None

    for enc in encodings:
        try:
            data.decode(enc)
        except UnicodeDecodeError as e:
            last_err = e
            continue
        try:
            sample = _decode_sample(data, enc)
            delim = _guess_delimiter(sample)
            df = _read_with(data, enc, delim)

            # если вдруг прочитался в 1 колонку
            if df.shape[1] == 1:
                for d2 in [";", ",", "\t", "|"]:
                    if d2 == delim:
                        continue
                    df2 = _read_with(data, enc, d2)
                    if df2.shape[1] > 1:
                        df = df2
                        break
            logger.debug("CSV прочитан: encoding=%s, sep=%r, %d строк", enc, delim, len(df))
            return df
        except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error, UnicodeDecodeError, ValueError) as e:
            last_err = e
            continue

    raise StructuralError(f"No se pudo leer el archivo CSV: {last_err}")
# =========================

# Main: bytes -> rows
# =========================
def read_table(data: bytes, filename: str) -> List[List[Any]]:
    """
    Декодирует выгрузку в список строк; первая строка - заголовки
      - CSV/TXT/TSV: pandas, ячейки как текст
      - XLSX/XLSM: openpyxl, первый лист, merged cells развёрнуты
    Пустой или нечитаемый файл -> StructuralError
    """
    if not data:
        raise StructuralError("El archivo está vacío.")

    name = (filename or "").lower()
    if name.endswith(EXCEL_EXTENSIONS):
        try:
            rows = _read_excel_bytes(data)
        except Exception as e:
            raise StructuralError(f"No se pudo leer el archivo Excel: {e}") from e
    elif name.endswith(TEXT_EXTENSIONS) or "." not in name:
        df = _read_csv_bytes(data)
        rows = df.values.tolist()
    else:
        raise StructuralError(f"Formato no soportado: {filename}")

    # хвостовые пустые строки Excel
    while rows and all(v is None or str(v).strip() == "" for v in rows[-1]):
        rows.pop()
    if not rows:
        raise StructuralError("El archivo no contiene filas.")
    return rows
