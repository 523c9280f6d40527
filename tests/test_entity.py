"""Unit tests for the identity resolution cascade."""

import pytest

from reconcile.entity import (
    normalize_document,
    document_key,
    normalize_email,
    name_key,
    build_roster_index,
    resolve_student,
)


def test_document_key():
    """Documents compare on digits only, without leading zeros."""
    assert document_key("0078900") == "78900"
    assert document_key("78900") == "78900"
    assert document_key("78900cc") == "78900"
    assert document_key(78900) == "78900"
    assert document_key(78900.0) == "78900"
    assert document_key("78900.0") == "78900"


def test_placeholder_document_has_no_key(roster):
    """All-zero documents give no key and never match each other."""
    assert document_key("000") == ""
    assert document_key("0") == ""
    students = [dict(s, document_number="0") for s in roster[:2]]
    index = build_roster_index(students)
    assert index["by_doc"] == {}
    assert resolve_student({"document": "000"}, index) == (None, "")


def test_scientific_notation():
    """Spreadsheet scientific notation is reconstructed."""
    assert normalize_document("7.89E+4") == "78900"
    assert document_key("7.89E+4") == "78900"
    assert document_key("1.02030405E+09") == "1020304050"


def test_empty_documents_have_no_key():
    """No digits, or only zeros, gives no key."""
    assert document_key("") == ""
    assert document_key(None) == ""
    assert document_key("000") == ""
    assert document_key("sin documento") == ""


def test_text_keys():
    """Emails are lowercased and names lose accents and punctuation."""
    assert normalize_email("  Ana.Gomez@SENA.edu.co ") == "ana.gomez@sena.edu.co"
    assert name_key("Gómez Ruiz, Ana María") == "gomez ruiz ana maria"


def test_resolve_by_document(roster):
    """Step 1: document key, including leading zeros and scientific notation."""
    index = build_roster_index(roster)
    assert resolve_student({"document": "0078900"}, index) == (roster[0], "document")
    assert resolve_student({"document": "7.89E+4"}, index) == (roster[0], "document")


def test_resolve_email_in_document_column(roster):
    """Step 2: the LMS may put the email in the document column."""
    index = build_roster_index(roster)
    student, method = resolve_student({"document": "ANA.GOMEZ@sena.edu.co"}, index)
    assert student is roster[0]
    assert method == "email_in_document"


def test_resolve_by_username(roster):
    """Step 3: username, or a username that is really a document."""
    index = build_roster_index(roster)
    assert resolve_student({"username": "lperez"}, index) == (roster[1], "username")
    assert resolve_student({"username": "1020304050"}, index) == (roster[1], "username")
    assert resolve_student({"username": "0078900"}, index) == (roster[0], "username")


def test_resolve_by_secondary_email(roster):
    """Step 4: separate email column."""
    index = build_roster_index(roster)
    assert resolve_student({"email": "Carlos@correo.co"}, index) == (roster[2], "secondary_email")


def test_resolve_by_email_local_part(roster):
    """Step 5: LMS login equal to the part before '@'."""
    index = build_roster_index(roster)
    assert resolve_student({"username": "carlos"}, index) == (roster[2], "email_local_part")


def test_resolve_by_name(roster):
    """Step 6: exact name key in either order, then token subset."""
    index = build_roster_index(roster)
    assert resolve_student({"first_name": "ana maria", "last_name": "GOMEZ RUIZ"}, index) == (roster[0], "name_exact")
    assert resolve_student({"full_name": "Gómez Ruiz, Ana María"}, index) == (roster[0], "name_exact")
    assert resolve_student({"first_name": "Ruiz", "last_name": "Ana María Gómez"}, index)[0] is roster[0]
    assert resolve_student({"first_name": "Ana", "last_name": "Gómez"}, index) == (roster[0], "name_tokens")


def test_unmatched(roster):
    """A row failing every step is unmatched."""
    index = build_roster_index(roster)
    assert resolve_student({"document": "999"}, index) == (None, "")
    assert resolve_student({"first_name": "Persona", "last_name": "Externa"}, index) == (None, "")
    assert resolve_student({}, index) == (None, "")


def test_first_roster_entry_wins_on_collision(roster):
    """Duplicate keys in the roster resolve to the first entry."""
    dup = dict(roster[0], id="dup")
    index = build_roster_index(roster + [dup])
    student, _ = resolve_student({"document": "78900"}, index)
    assert student["id"] == "s1"


def test_username_does_not_shadow_real_document(roster):
    """A digit username is indexed as a document only when that key is free."""
    other = dict(roster[2], id="s4", document_number="12345", username="78900", email="")
    index = build_roster_index(roster + [other])
    student, method = resolve_student({"document": "78900"}, index)
    assert student["id"] == "s1"
    assert method == "document"


@pytest.mark.xfail(strict=True, reason="surname-only rows match the first roster student with that surname")
def test_shared_surname_is_ambiguous():
    """A row carrying only a shared surname should not pick a student."""
    roster = [
        {"id": "a", "document_number": "1", "first_name": "Ana", "last_name": "Gómez"},
        {"id": "b", "document_number": "2", "first_name": "Pedro", "last_name": "Gómez"},
    ]
    index = build_roster_index(roster)
    student, _ = resolve_student({"last_name": "Gómez"}, index)
    assert student is None
