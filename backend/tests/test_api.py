import pytest
from fastapi.testclient import TestClient

from clinicq.main import app

client = TestClient(app)

CLINIC_ID = "clinic-1"
DOCTOR_ID = "doctor-1"


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def book(phone="01012345678", **extra):
    payload = {"clinic_slug": "cairo-care", "doctor_id": DOCTOR_ID, "name": "Ahmed Mohamed", "phone": phone}
    payload.update(extra)
    return client.post("/public/book", json=payload)


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["storage"] == "memory"


def test_public_booking_and_status(seeded):
    response = book(chronic_diseases="Asthma")
    assert response.status_code == 201
    booking = response.json()
    assert booking["queue_number"] == 1
    assert booking["queue_type"] == "Consultation"

    response = client.get(f"/public/tickets/{booking['public_ticket_id']}")
    assert response.status_code == 200
    data = response.json()
    assert data["ticket"]["queue_number"] == 1
    assert data["ticket"]["status"] == "Waiting"
    assert data["people_ahead"] == 0
    assert "Asthma" not in response.text
    assert "01012345678" not in response.text


def test_public_booking_errors(seeded):
    first = book().json()

    response = book()
    assert response.status_code == 409
    assert response.json()["code"] == "already_booked"
    assert response.json()["public_ticket_id"] == first["public_ticket_id"]

    response = book(phone="12345")
    assert response.status_code == 422

    response = book(phone="01198765432", clinic_slug="nowhere")
    assert response.status_code == 404
    assert response.json()["code"] == "invalid_target"


def test_unknown_public_ticket_is_404(seeded):
    response = client.get("/public/tickets/does-not-exist")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_queue_stream_for_unknown_doctor_is_404(seeded):
    response = client.get(f"/public/queue-state/{CLINIC_ID}/no-such-doctor/stream")
    assert response.status_code == 404


def test_staff_routes_require_a_valid_token(seeded):
    booking = book().json()

    response = client.post(f"/queue/tickets/{booking['ticket_id']}/start", headers=auth("not-a-jwt"))
    assert response.status_code == 401

    response = client.post(f"/queue/tickets/{booking['ticket_id']}/start")
    assert response.status_code in (401, 403)


def test_nurse_cannot_call_patients_in(seeded, make_token):
    booking = book().json()

    response = client.post(
        f"/queue/tickets/{booking['ticket_id']}/start",
        headers=auth(make_token(role="nurse", user_id="nurse-1")),
    )
    assert response.status_code == 403


def test_consultation_flow(seeded, make_token):
    headers = auth(make_token())
    first = book().json()
    second = book(phone="01198765432").json()

    response = client.post(f"/queue/tickets/{first['ticket_id']}/start", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Consulting"

    response = client.post(f"/queue/tickets/{second['ticket_id']}/start", headers=headers)
    assert response.status_code == 409
    assert response.json()["code"] == "doctor_busy"

    response = client.post(
        f"/queue/tickets/{first['ticket_id']}/finish-and-call-next",
        json={"next_ticket_id": first["ticket_id"]},
        headers=headers,
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_next_patient"

    response = client.post(
        f"/queue/tickets/{first['ticket_id']}/finish-and-call-next",
        json={"next_ticket_id": second["ticket_id"], "prescription_text": "Rest"},
        headers=headers,
    )
    assert response.status_code == 200
    result = response.json()
    assert result["finished"]["status"] == "Finished"
    assert result["consulting"]["queue_number"] == 2
    assert result["revenue_accrued"] == 100

    response = client.post(f"/queue/tickets/{second['ticket_id']}/finish", headers=headers)
    assert response.status_code == 200
    assert seeded.doctors[DOCTOR_ID]["total_revenue"] == 200

    response = client.post(f"/queue/tickets/{second['ticket_id']}/finish", headers=headers)
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"

    response = client.get("/queue/state", headers=headers)
    assert response.status_code == 200
    assert response.json()["current_consulting_queue_number"] is None


def test_desk_booking_and_day_list(seeded, make_token):
    headers = auth(make_token(role="nurse", user_id="nurse-1"))

    response = client.post(
        "/queue/tickets",
        json={"name": "Mona Ali", "phone": "01511112222"},
        headers=headers,
    )
    assert response.status_code == 201
    book(phone="01198765432")

    response = client.get("/queue/tickets", headers=headers)
    assert response.status_code == 200
    tickets = response.json()
    assert [t["queue_number"] for t in tickets] == [1, 2]
    assert tickets[0]["source"] == "nurse"
    assert tickets[0]["booked_by"] == "nurse-1"

    response = client.get("/queue/next", headers=headers)
    assert response.status_code == 200
    assert response.json()["queue_number"] == 1

    response = client.delete(f"/queue/tickets/{tickets[0]['id']}", headers=headers)
    assert response.status_code == 200

    response = client.get("/queue/tickets", params={"status": "Waiting"}, headers=headers)
    assert [t["queue_number"] for t in response.json()] == [2]


def test_next_with_empty_queue_is_404(seeded, make_token):
    response = client.get("/queue/next", headers=auth(make_token()))
    assert response.status_code == 404


@pytest.mark.parametrize("params, status_code", [
    ({"start_day": "2026-01-01", "end_day": "2026-01-31"}, 200),
    ({"start_day": "2025-01-01", "end_day": "2026-01-31"}, 400),
    ({"start_day": "2026-02-30", "end_day": "2026-03-01"}, 400),
    ({"start_day": "yesterday", "end_day": "2026-01-31"}, 422),
])
def test_history_range_checks(seeded, make_token, params, status_code):
    response = client.get("/queue/history", params=params, headers=auth(make_token()))
    assert response.status_code == status_code


def test_other_clinic_cannot_touch_tickets(seeded, make_token):
    booking = book().json()
    token = make_token(user_id="doctor-giza", clinic_id="clinic-2", doctor_id="doctor-giza")

    response = client.post(f"/queue/tickets/{booking['ticket_id']}/start", headers=auth(token))
    assert response.status_code == 404


def test_staff_of_another_doctor_cannot_read_or_cancel_tickets(seeded, make_token):
    booking = book().json()
    headers = auth(make_token(role="nurse", user_id="nurse-2", doctor_id="doctor-2"))

    response = client.get(f"/queue/tickets/{booking['ticket_id']}", headers=headers)
    assert response.status_code == 404

    response = client.delete(f"/queue/tickets/{booking['ticket_id']}", headers=headers)
    assert response.status_code == 404
    assert seeded.tickets[booking["ticket_id"]]["status"] == "Waiting"

    admin = auth(make_token(role="admin", user_id="admin-1", doctor_id=None))
    response = client.get(f"/queue/tickets/{booking['ticket_id']}", headers=admin)
    assert response.status_code == 200


def test_doctor_pauses_and_closes_queue(seeded, make_token):
    headers = auth(make_token())

    response = client.put("/doctors/me/availability", json={"is_available": False}, headers=headers)
    assert response.status_code == 200
    assert response.json()["is_available"] is False

    response = client.put("/doctors/me/message", json={"message": "Running late"}, headers=headers)
    assert response.json()["status_message"] == "Running late"

    response = client.get("/doctors/me", headers=headers)
    assert response.json()["id"] == DOCTOR_ID

    response = client.put("/queue/state/open", json={"is_open": False}, headers=headers)
    assert response.status_code == 200
    assert response.json()["is_open"] is False

    response = book()
    assert response.status_code == 404
    assert response.json()["code"] == "invalid_target"


def test_admin_purges_expired_public_tickets(seeded, make_token):
    response = client.delete("/queue/public-tickets/expired", headers=auth(make_token()))
    assert response.status_code == 403

    response = client.delete(
        "/queue/public-tickets/expired",
        headers=auth(make_token(role="admin", user_id="admin-1", doctor_id=None)),
    )
    assert response.status_code == 200
    assert response.json() == {"deleted": 0}
