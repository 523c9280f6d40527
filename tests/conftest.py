"""Shared fixtures: a small roster written into a temporary data directory."""

import pytest

from reconcile.utils import save_json, roster_path


ROSTER = [
    {
        "id": "s1",
        "document_number": "78900",
        "first_name": "Ana María",
        "last_name": "Gómez Ruiz",
        "email": "ana.gomez@sena.edu.co",
        "username": "",
        "cohort": "F1",
        "status": "Formación",
    },
    {
        "id": "s2",
        "document_number": "1020304050",
        "first_name": "Luis",
        "last_name": "Pérez",
        "email": "lperez@misena.edu.co",
        "username": "lperez",
        "cohort": "F2",
        "status": "Formación",
    },
    {
        "id": "s3",
        "document_number": "55555",
        "first_name": "Carlos",
        "last_name": "Díaz",
        "email": "carlos@correo.co",
        "username": "",
        "cohort": "F1",
        "status": "Formación",
    },
]


@pytest.fixture
def roster():
    return [dict(s) for s in ROSTER]


@pytest.fixture
def data_dir(tmp_path, roster):
    save_json(roster_path(tmp_path), roster)
    return tmp_path
