class StructuralError(ValueError):
    """Файл нельзя импортировать целиком: не читается, нет строки заголовков или нечего загружать."""


# коды замечаний по строкам (не прерывают импорт)
ROW_UNMATCHED = "row_unmatched"
ROW_DATE_INVALID = "row_date_invalid"
