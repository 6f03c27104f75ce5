"""API tests for patient list and patient details."""
from conftest import make_prescription


def test_list_and_search(client, auth_headers, patient_jane, patient_john):
    resp = client.get("/api/v1/patients/", headers=auth_headers)
    assert resp.status_code == 200
    assert [p["full_name"] for p in resp.json()] == ["Jane Doe", "John Roe"]

    resp = client.get("/api/v1/patients/", params={"q": "jane d"}, headers=auth_headers)
    assert [p["id"] for p in resp.json()] == [patient_jane.id]


def test_detail_splits_active_and_history(client, auth_headers, db_session, patient_jane):
    make_prescription(db_session, patient_jane, status="Completed", medication="Lisinopril")
    make_prescription(db_session, patient_jane, status="Pharmacist Check", medication="Metformin")
    make_prescription(db_session, patient_jane, status="billing", medication="Atorvastatin")

    resp = client.get(f"/api/v1/patients/{patient_jane.id}", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["patient"]["date_of_birth_display"] == "1980-04-15"
    assert body["patient"]["allergies"] == ["Penicillin"]
    assert sorted(r["medication_name"] for r in body["active_requests"]) == ["Atorvastatin", "Metformin"]
    assert [r["medication_name"] for r in body["prescription_history"]] == ["Lisinopril"]

    resp = client.get(
        f"/api/v1/patients/{patient_jane.id}", params={"status": "pharmacistCheck"}, headers=auth_headers,
    )
    active = resp.json()["active_requests"]
    assert [r["status"] for r in active] == ["pharmacistCheck"]
    assert active[0]["status_label"] == "Pharmacist Check"
    # History is never filtered
    assert len(resp.json()["prescription_history"]) == 1


def test_unknown_status_filter(client, auth_headers, patient_jane):
    resp = client.get(f"/api/v1/patients/{patient_jane.id}", params={"status": "lost"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid-status"


def test_missing_patient(client, auth_headers):
    resp = client.get("/api/v1/patients/does-not-exist", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not-found"
