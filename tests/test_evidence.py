"""Unit tests for evidence canonicalisation across cohorts."""

from reconcile.evidence import (
    canonical_key,
    group_evidence_columns,
    EvidenceCanonicalizer,
    unify_for_view,
    resolve_for_student,
)
from reconcile.infer import classify_headers
from reconcile.utils import default_phase

P = "Fase 1: Análisis"
P2 = "Fase 2: Planeación"


def _ids():
    counter = iter(range(1, 1000))
    return lambda: f"new{next(counter)}"


def _columns(headers):
    return classify_headers(["Documento"] + headers)["evidence"]


def test_canonical_key():
    """Evidence codes, EV numbers and plain numbers reduce to one key."""
    assert canonical_key("GA1-220501046-AA1-EV01 Informe") == "ga1-220501046-aa1-ev01"
    assert canonical_key("GA1–220501046–AA1–EV01") == "ga1-220501046-aa1-ev01"
    assert canonical_key("AA2-EV03 Mapa conceptual") == "aa2-ev03"
    assert canonical_key("EV01") == "ev1"
    assert canonical_key("Evidencia 01") == "ev1"
    assert canonical_key("ev 1") == "ev1"
    assert canonical_key("Taller 4") == "ev4"
    assert canonical_key("Informe Final") == "informe final"


def test_canonical_key_is_stable():
    """The same description always gives the same key."""
    assert canonical_key("EV07 (Real)") == canonical_key("EV07 (Real)")
    assert canonical_key(" ev07 ") == canonical_key("EV7")


def test_real_and_letter_columns_merge():
    """'(Real)' and '(Letra)' columns of one evidence become one entry."""
    cols = _columns(["EV01 (Real)", "EV01 (Letra)", "Evidencia 2", "EV1"])
    grouped = group_evidence_columns(cols, P)
    assert list(grouped) == [("ev1", P), ("ev2", P)]
    ev1 = grouped[("ev1", P)]
    assert ev1["score_index"] == 1
    assert ev1["letter_index"] == 2
    assert ev1["fallback_index"] == 4
    assert ev1["base_name"] == "EV01"
    assert grouped[("ev2", P)]["fallback_index"] == 3


def test_first_score_column_wins():
    """A later score column for the same evidence is ignored."""
    cols = _columns(["EV01 (Real)", "Evidencia 1 Nota"])
    grouped = group_evidence_columns(cols, P)
    assert grouped[("ev1", P)]["score_index"] == 1


def test_phase_hint_splits_entries():
    """The same code in two phases is two evidences."""
    cols = _columns(["EV01 Análisis", "EV01 Planeación"])
    grouped = group_evidence_columns(cols, P)
    assert set(grouped) == {("ev1", P), ("ev1", P2)}


def test_default_phase_from_config():
    """Columns without a phase hint use the configured default phase."""
    grouped = group_evidence_columns(_columns(["EV05"]))
    assert list(grouped) == [("ev5", default_phase())]


def test_activity_resolution_order():
    """Own cohort, then cohort-agnostic, then a new activity."""
    catalog = [
        {"id": "a1", "name": "EV01", "cohort": "F1", "phase": P, "detail": "EV01"},
        {"id": "a0", "name": "EV02", "cohort": "", "phase": P, "detail": "Evidencia 2"},
    ]
    canon = EvidenceCanonicalizer(_columns(["EV01", "Evidencia 2"]), catalog, default_phase=P, id_factory=_ids())
    assert canon.activity_for(("ev1", P), "F1")["id"] == "a1"
    assert canon.activity_for(("ev2", P), "F1")["id"] == "a0"
    assert canon.activity_for(("ev2", P), "F2")["id"] == "a0"

    minted = canon.activity_for(("ev1", P), "F2")
    assert minted["id"] == "new1"
    assert minted["cohort"] == ""
    assert minted["name"] == "EV03"
    assert minted["detail"] == "EV01"
    assert canon.activity_for(("ev1", P), "F3") is minted
    assert [a["id"] for a in canon.created] == ["new1"]


def test_new_activities_belong_to_import_cohort():
    """An import for one cohort mints activities for that cohort."""
    canon = EvidenceCanonicalizer(_columns(["EV01", "EV02"]), [], cohort="F9", default_phase=P, id_factory=_ids())
    a = canon.activity_for(("ev1", P), "F9")
    b = canon.activity_for(("ev2", P), "F9")
    assert (a["cohort"], a["name"]) == ("F9", "EV01")
    assert (b["cohort"], b["name"]) == ("F9", "EV02")


def test_ev_numbers_are_per_phase():
    """EV numbering continues from the highest number in the same phase."""
    catalog = [
        {"id": "x", "name": "EV07", "cohort": "", "phase": P2, "detail": "EV07"},
        {"id": "y", "name": "EV02", "cohort": "", "phase": P, "detail": "EV02"},
    ]
    canon = EvidenceCanonicalizer(_columns(["EV09"]), catalog, default_phase=P, id_factory=_ids())
    assert canon.activity_for(("ev9", P), "")["name"] == "EV03"


def test_detail_backfill_is_a_change_not_a_mutation():
    """Missing detail is filled in the change-set; the catalog is untouched."""
    catalog = [{"id": "a0", "name": "EV02", "cohort": "", "phase": P, "detail": ""}]
    canon = EvidenceCanonicalizer(_columns(["Evidencia 2 Mapa"]), catalog, default_phase=P, id_factory=_ids())
    a = canon.activity_for(("ev2", P), "F1")
    assert a["id"] == "a0"
    assert a["detail"] == "Evidencia 2 Mapa"
    assert catalog[0]["detail"] == ""
    assert canon.changes() == {"created": [], "updated": [a]}


def _catalog():
    return [
        {"id": "a1", "name": "EV01", "cohort": "F1", "phase": P, "detail": "EV01"},
        {"id": "a2", "name": "EV05", "cohort": "F2", "phase": P, "detail": "Evidencia 1"},
        {"id": "a3", "name": "EV02", "cohort": "", "phase": P, "detail": "EV02"},
        {"id": "a4", "name": "EV01", "cohort": "F1", "phase": P2, "detail": "EV01"},
        {"id": "a5", "name": "Promedio", "cohort": "F1", "phase": P, "detail": ""},
    ]


def test_view_for_one_cohort():
    """One cohort sees, per evidence, its own activity or else the shared one."""
    acts = _catalog()
    view = unify_for_view(acts, P, "F1")
    assert [a["id"] for a in view["activities"]] == ["a1", "a3", "a5"]
    assert [a["id"] for a in view["visible"]] == ["a1", "a3"]
    assert view["by_canonical"] is None
    assert [a["id"] for a in unify_for_view(acts, P, "F3")["activities"]] == ["a3"]


def test_view_for_one_cohort_prefers_own_copy_per_key():
    """A cohort copy hides the shared copy of the same evidence only."""
    acts = [
        {"id": "s1", "name": "EV01", "cohort": "", "phase": P, "detail": "EV01"},
        {"id": "s2", "name": "EV02", "cohort": "", "phase": P, "detail": "EV02"},
        {"id": "f2", "name": "EV04", "cohort": "F1", "phase": P, "detail": "Evidencia 2"},
    ]
    view = unify_for_view(acts, P, "F1")
    assert [a["id"] for a in view["visible"]] == ["s1", "f2"]


def test_view_for_all_cohorts():
    """All cohorts: one representative per key plus the per-cohort map."""
    acts = _catalog()
    view = unify_for_view(acts, P)
    assert [a["id"] for a in view["visible"]] == ["a1", "a3"]
    assert view["by_canonical"]["ev1"] == {"F1": acts[0], "F2": acts[1]}


def test_resolve_for_student():
    """A representative resolves to the student's own cohort instance."""
    acts = _catalog()
    view = unify_for_view(acts, P)
    assert resolve_for_student(view, acts[0], "F2")["id"] == "a2"
    assert resolve_for_student(view, acts[0], "F1")["id"] == "a1"
    assert resolve_for_student(view, acts[0], "F5")["id"] == "a1"
    single = unify_for_view(acts, P, "F1")
    assert resolve_for_student(single, acts[0], "F2")["id"] == "a1"
