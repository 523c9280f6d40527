from __future__ import annotations
import logging
import streamlit as st
import pandas as pd
from reconcile.errors import StructuralError, ROW_UNMATCHED, ROW_DATE_INVALID
from reconcile.pipeline import import_file, summary_line
from reconcile.scoring import build_gradebook, build_access_table
from reconcile.store import load_students, load_activities, load_grades, load_access, commit_import
from reconcile.utils import phases, default_phase

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

ALL_COHORTS = "Todas"
st.set_page_config(page_title="Conciliación de aprendices", layout="wide")
st.title("Conciliación de calificaciones y asistencia LMS")
# =========================

# Helpers
# =========================
ISSUE_MAP = {
    ROW_UNMATCHED: ("warn", "No se encontró el aprendiz en el listado."),
    ROW_DATE_INVALID: ("warn", "Fecha de último acceso no reconocida."),
}

def _issues_df(issues: list[dict]) -> pd.DataFrame:
    out = []
    for it in issues:
        level, msg = ISSUE_MAP.get(it.get("code"), ("warn", f"Problema: {it.get('code')}"))
        out.append({
            "Nivel": level,
            "Fila": it.get("row"),
            "Código": it.get("code"),
            "Mensaje": msg,
            "Valor": it.get("value", ""),
        })
    return pd.DataFrame(out)

def _cohorts(students: list[dict]) -> list[str]:
    return sorted({str(s.get("cohort") or "") for s in students if s.get("cohort")})
# =========================

# Import
# =========================
students = load_students()
if not students:
    st.warning("El listado de aprendices está vacío: no hay con quién conciliar las filas.")

c1, c2 = st.columns(2)
with c1:
    cohort_sel = st.selectbox("Ficha", [ALL_COHORTS] + _cohorts(students), index=0)
with c2:
    phase_list = phases()
    phase_sel = st.selectbox("Fase (para columnas sin fase en el encabezado)", phase_list, index=phase_list.index(default_phase()))
cohort = None if cohort_sel == ALL_COHORTS else cohort_sel

upload = st.file_uploader(
    "Cargue la exportación (LMS o calificaciones): Excel/CSV",
    type=["xlsx", "xlsm", "csv", "txt", "tsv"],
    accept_multiple_files=False,
)
preview = st.checkbox("Solo vista previa (no guardar)", value=True)

if upload is not None and st.button("Procesar archivo"):
    try:
        plan = import_file(upload.getvalue(), upload.name, cohort=cohort, phase=phase_sel, dry_run=preview)
    except StructuralError as e:
        st.error(str(e))
    else:
        st.session_state["plan"] = plan
        st.session_state["plan_saved"] = not preview

plan = st.session_state.get("plan")
if plan:
    res = plan["result"]
    if st.session_state.get("plan_saved"):
        st.success(summary_line(res))
    else:
        st.info("Vista previa. " + summary_line(res))

    m1, m2, m3, m4 = st.columns(4)
    with m1:
        st.metric("Filas", res["rows"])
    with m2:
        st.metric("Actividades nuevas", len(plan["activities_created"]))
    with m3:
        st.metric("Calificaciones", len(plan["grade_entries"]))
    with m4:
        st.metric("Accesos más recientes", len(plan["access_updates"]))

    with st.expander("Detalle de la conciliación", expanded=False):
        if plan["methods"]:
            st.write("Coincidencias por método:")
            st.dataframe(pd.DataFrame(sorted(plan["methods"].items()), columns=["Método", "Filas"]), width="stretch")
        if plan["issues"]:
            st.dataframe(_issues_df(plan["issues"]).head(1000), width="stretch")
        else:
            st.success("Todas las filas se conciliaron.")

    if not st.session_state.get("plan_saved") and st.button("Guardar cambios"):
        commit_import(plan)
        st.session_state["plan_saved"] = True
        st.success("Guardado.")
# =========================

# Reports
# =========================
st.subheader("Calificaciones")
q = st.text_input("Buscar aprendiz", value="")
grades_df = build_gradebook(students, load_activities(), load_grades(), cohort=cohort)
view = grades_df.copy()
if q.strip():
    mask = (view["Apellidos"].astype(str) + " " + view["Nombres"].astype(str) + " " + view["Documento"].astype(str))
    view = view[mask.str.contains(q.strip(), case=False, na=False)]
st.dataframe(view.head(500), width="stretch")

st.subheader("Último acceso al LMS")
scope = [s for s in students if not cohort or s.get("cohort") == cohort]
access_df = build_access_table(scope, load_access())
st.dataframe(access_df.head(500), width="stretch")
