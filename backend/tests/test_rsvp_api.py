"""
Tests for the public RSVP routes and the open-tracking pixel
"""
from conftest import TEST_USER

USER = TEST_USER["id"]


class TestPublicRsvp:
    def test_rsvp_on_url_event_debits_attending(self, anonymous_client, balance, make_event, ledger, guests):
        balance("url", 10)
        event = make_event(status="published", invitation_type="url:classic")
        guests.questions.append({"id": "q1", "event_id": event["id"], "label": "Menu", "type": "text"})

        response = anonymous_client.post(f"/api/public/events/{event['id']}/rsvp", json={
            "group": {"group_name": "Garcia", "contact_email": "garcia@example.com"},
            "guests": [
                {"full_name": "Ana", "attending": True, "answers": [
                    {"question_id": "q1", "answer": "Vegetarian"},
                    {"question_id": "other-event-question", "answer": "x"},
                ]},
                {"full_name": "Luis", "attending": True},
                {"full_name": "Marta", "attending": False},
            ],
        })

        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["group"]["group_name"] == "Garcia"
        assert len(body["guests"]) == 3
        assert [a["answer"] for a in body["answers"]] == ["Vegetarian"]
        assert ledger.balances[(USER, "url")]["total_used"] == 2

    def test_rsvp_on_email_event_queues_guests(self, anonymous_client, balance, make_event, ledger):
        balance("email", 10)
        event = make_event(status="published", invitation_type="email:classic")

        response = anonymous_client.post(f"/api/public/events/{event['id']}/rsvp", json={
            "guests": [{"full_name": "Ana", "email": "ana@example.com", "attending": True}],
        })

        assert response.json()["guests"][0]["email_status"] == "queued"
        assert ledger.balances[(USER, "email")]["total_used"] == 0

    def test_rsvp_needs_guests(self, anonymous_client, make_event):
        event = make_event(status="published")
        response = anonymous_client.post(f"/api/public/events/{event['id']}/rsvp", json={"guests": []})
        assert response.status_code == 422

    def test_rsvp_for_unknown_event(self, anonymous_client):
        response = anonymous_client.post("/api/public/events/missing/rsvp", json={
            "guests": [{"full_name": "Ana"}],
        })
        assert response.status_code == 404


class TestPersonalizedRsvp:
    def test_guest_lookup(self, anonymous_client, make_event, make_guest):
        event = make_event(status="published")
        guest = make_guest(event["id"], phone="600000000")

        response = anonymous_client.get(f"/api/public/events/{event['id']}/guests/{guest['id']}")

        assert response.status_code == 200
        assert response.json()["guest"] == {
            "id": guest["id"], "full_name": "Ana Guest", "email": "ana@example.com", "phone": "600000000"
        }

    def test_guest_of_another_event(self, anonymous_client, make_event, make_guest):
        event = make_event(status="published")
        guest = make_guest(make_event()["id"])

        response = anonymous_client.get(f"/api/public/events/{event['id']}/guests/{guest['id']}")

        assert response.status_code == 404

    def test_personalized_rsvp_completes_invitation(self, anonymous_client, make_event, make_guest, guests):
        event = make_event(status="published", invitation_type="email:classic")
        guest = make_guest(event["id"], email_status="sent")

        response = anonymous_client.post(
            f"/api/public/events/{event['id']}/guests/{guest['id']}/rsvp",
            json={"attending": True, "full_name": "Ana Maria"},
        )

        assert response.status_code == 200
        stored = guests.guests[guest["id"]]
        assert stored["email_status"] == "completed"
        assert stored["attending"] is True
        assert stored["full_name"] == "Ana Maria"
        assert stored["responded_at"]


class TestTrackingPixel:
    def test_pixel_marks_opened(self, anonymous_client, make_event, make_guest, guests):
        event = make_event(status="published", invitation_type="email:classic")
        guest = make_guest(event["id"], email_status="sent")

        response = anonymous_client.get(f"/api/public/track/{guest['id']}.gif")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert "no-store" in response.headers["cache-control"]
        assert response.content.startswith(b"GIF89a")
        assert guests.guests[guest["id"]]["email_status"] == "opened"

    def test_pixel_never_downgrades(self, anonymous_client, make_event, make_guest, guests):
        event = make_event(status="published", invitation_type="email:classic")
        guest = make_guest(event["id"], email_status="completed")

        anonymous_client.get(f"/api/public/track/{guest['id']}.gif")

        assert guests.guests[guest["id"]]["email_status"] == "completed"

    def test_pixel_for_unknown_guest_still_serves_gif(self, anonymous_client):
        response = anonymous_client.get("/api/public/track/missing.gif")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
