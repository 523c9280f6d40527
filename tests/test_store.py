"""Unit tests for the JSON stores."""

import json

from reconcile.store import (
    load_students,
    load_activities,
    save_activities,
    load_grades,
    upsert_grades,
    load_access,
    upsert_access,
)
from reconcile.utils import roster_path, grades_path, save_json


def test_load_students_migrates_old_keys(tmp_path):
    """camelCase and 'group' records are normalised on load."""
    save_json(roster_path(tmp_path), [
        {"id": "s1", "documentNumber": "0078900", "firstName": "Ana", "lastName": "Gómez", "group": "F1"},
        {"documentNumber": "1"},
    ])
    students = load_students(tmp_path)
    assert len(students) == 1
    s = students[0]
    assert s["document_number"] == "0078900"
    assert s["cohort"] == "F1"
    assert s["status"] == "Formación"


def test_broken_json_is_empty(tmp_path):
    """An unreadable store loads as empty."""
    roster_path(tmp_path).write_text("{not json", encoding="utf-8")
    assert load_students(tmp_path) == []


def test_save_activities_overwrites(tmp_path):
    """The activity catalog is written in full."""
    save_activities([{"id": "a1", "name": "EV01", "group": "F1"}], tmp_path)
    save_activities([{"id": "a2", "name": "EV02"}], tmp_path)
    acts = load_activities(tmp_path)
    assert [a["id"] for a in acts] == ["a2"]
    assert acts[0]["max_score"] == 100


def test_upsert_grades_only_rewrites_changes(tmp_path):
    """Unchanged score and letter are not rewritten."""
    entry = {"student_id": "s1", "activity_id": "a1", "score": 80, "letter": "A", "updated_at": "t1"}
    assert upsert_grades([entry], tmp_path) == 1
    assert upsert_grades([dict(entry, updated_at="t2")], tmp_path) == 0
    assert load_grades(tmp_path)[0]["updated_at"] == "t1"

    assert upsert_grades([dict(entry, score=60, letter="D", updated_at="t3")], tmp_path) == 1
    grades = load_grades(tmp_path)
    assert len(grades) == 1
    assert (grades[0]["score"], grades[0]["letter"]) == (60, "D")


def test_upsert_grades_without_changes_does_not_write(tmp_path):
    """No changes, no file."""
    assert upsert_grades([], tmp_path) == 0
    assert not grades_path(tmp_path).exists()


def test_upsert_access_newer_wins(tmp_path):
    """Access timestamps only move forward."""
    assert upsert_access({"s1": "2025-02-01 00:00:00"}, tmp_path) == 1
    assert upsert_access({"s1": "2025-01-01 00:00:00"}, tmp_path) == 0
    assert upsert_access({"s1": "2025-02-01 00:00:00"}, tmp_path) == 0
    assert load_access(tmp_path) == {"s1": "2025-02-01 00:00:00"}
    assert upsert_access({"s1": "2025-03-01 08:00:00", "s2": "2025-01-05 00:00:00"}, tmp_path) == 2
    stored = json.loads((tmp_path / "lms_last_access.json").read_text(encoding="utf-8"))
    assert stored == {"s1": "2025-03-01 08:00:00", "s2": "2025-01-05 00:00:00"}
