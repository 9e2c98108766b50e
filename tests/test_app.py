import pytest
from fastapi.testclient import TestClient

from conftest import TOKEN, make_proposal
from proposal_acceptance.app import create_app
from proposal_acceptance.gateway import InMemoryProposalGateway

GEOMETRY = {"width": 300, "height": 250, "device_pixel_ratio": 1.0, "left": 20, "top": 40}
STROKE = [
    {"type": "pointerdown", "client_x": 30, "client_y": 50},
    {"type": "pointermove", "client_x": 80, "client_y": 90},
    {"type": "pointerup"},
]


@pytest.fixture
def client(settings, gateway):
    app = create_app(settings=settings, gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client


def open_session(client, token=TOKEN):
    response = client.post("/v1/sessions", json={"token": token})
    assert response.status_code == 200
    return response.json()


def test_open_session_describes_the_proposal(client):
    body = open_session(client)

    session = body["session"]
    assert body["accepted"]
    assert session["step"] == "view"
    assert session["kind"] == "full"
    assert session["available"]
    assert session["proposal"]["status_label"] == "Enviada"
    assert [row["total"] for row in session["ledger"]] == [500, 300, 200]
    assert session["all_selected"]
    assert session["terms"]["final_total"] == 1000
    assert session["payment"]["installment_options"] == [1, 2, 3, 4, 5, 6]
    assert "x-request-id" in {key.lower() for key in client.get("/health").headers}


def test_empty_token_redirects_to_exit_url(client, gateway, settings):
    response = client.post("/v1/sessions", json={"token": ""}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == settings.exit_url
    assert gateway.calls == []
    assert client.get("/health").json() == {"status": "ok", "sessions": 0}


def test_unknown_session_and_line_item_are_404(client):
    session_id = open_session(client)["session"]["session_id"]

    assert client.get("/v1/sessions/nope").status_code == 404
    assert client.put(f"/v1/sessions/{session_id}/ledger/99", json={"toggle": True}).status_code == 404


def test_counterproposal_flow_over_http(client, gateway):
    session_id = open_session(client)["session"]["session_id"]
    base = f"/v1/sessions/{session_id}"

    assert client.post(f"{base}/selection:start").json()["accepted"]
    ledger = client.put(f"{base}/ledger/3", json={"included": False, "note": "depois"}).json()["session"]
    assert ledger["some_selected"]
    assert ledger["terms"]["is_counterproposal"]
    assert ledger["terms"]["base_total"] == 800

    saved = client.post(f"{base}/selection:save", json={"observations": "Sem mentoria"}).json()
    assert saved["accepted"]
    assert saved["session"]["step"] == "signing"

    assert client.put(f"{base}/signature/surface", json=GEOMETRY).json()["session"]["signature_ready"]
    payment = client.put(
        f"{base}/payment", json={"payment_type": "prazo", "payment_method": "Boleto", "installments": 4}
    ).json()
    assert payment["accepted"]
    assert payment["session"]["terms"]["installment_value"] == 200

    drawn = client.post(f"{base}/signature/gestures", json={"events": STROKE}).json()
    assert drawn["session"]["has_ink"]

    signed = client.post(f"{base}/signature:submit").json()
    assert signed["accepted"]
    assert signed["session"]["step"] == "confirming"
    assert signed["session"]["proposal"]["status"] == "contraproposta"
    assert any(n["level"] == "success" for n in signed["session"]["notices"])

    confirmed = client.post(f"{base}/confirm", json={}).json()
    assert confirmed["session"]["step"] == "completed"
    assert [action for action, _ in gateway.calls].count("sign") == 1


def test_direct_signing_with_discount(client):
    session_id = open_session(client)["session"]["session_id"]
    base = f"/v1/sessions/{session_id}"

    started = client.post(f"{base}/signing:start", json=GEOMETRY).json()
    assert started["session"]["step"] == "signing"
    assert started["session"]["signature_ready"]

    client.put(f"{base}/payment", json={"payment_type": "vista", "payment_method": "PIX"})
    client.put(f"{base}/contact", json={"phone": "62999998888"})
    client.post(f"{base}/signature/gestures", json={"events": STROKE})
    session = client.get(base).json()["session"]
    assert session["contact"]["client_phone"] == "(62) 99999-8888"
    assert session["terms"]["discount_amount"] == 60

    assert client.post(f"{base}/signature:submit").json()["session"]["step"] == "confirming"


def test_invalid_choices_are_reported_as_notices(client):
    session_id = open_session(client)["session"]["session_id"]
    base = f"/v1/sessions/{session_id}"

    response = client.put(f"{base}/payment", json={"payment_method": "PIX"}).json()

    assert not response["accepted"]
    assert response["session"]["payment"]["payment_method"] == ""
    assert response["session"]["notices"][-1]["level"] == "error"


def test_reject_needs_confirmation(client, gateway):
    session_id = open_session(client)["session"]["session_id"]
    base = f"/v1/sessions/{session_id}"

    unconfirmed = client.post(f"{base}/reject", json={"reason": "Caro"}).json()
    assert not unconfirmed["accepted"]
    assert unconfirmed["session"]["step"] == "view"

    rejected = client.post(f"{base}/reject", json={"reason": "Caro", "confirmed": True}).json()
    assert rejected["session"]["step"] == "rejected"
    assert not client.post(f"{base}/selection:start").json()["accepted"]


def test_closing_a_session(client):
    session_id = open_session(client)["session"]["session_id"]

    assert client.delete(f"/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/v1/sessions/{session_id}").status_code == 404
    assert client.delete(f"/v1/sessions/{session_id}").status_code == 404


def test_recruitment_session_is_simple(settings):
    proposal = make_proposal(type="Recrutamento & Seleção", total_value=0)
    app = create_app(settings=settings, gateway=InMemoryProposalGateway({"rec": proposal}))

    with TestClient(app) as client:
        session = open_session(client, token="rec")["session"]

    assert session["kind"] == "simple"
    assert session["contact"]["client_name"] == ""


def test_sessions_without_a_proposal_are_not_kept(client):
    for _ in range(5):
        body = client.post("/v1/sessions", json={"token": "unknown"}).json()
        assert not body["accepted"]
        assert body["session"]["not_found"]
        assert body["session"]["notices"][-1]["level"] == "info"

    assert client.get("/health").json()["sessions"] == 0
    assert client.get(f"/v1/sessions/{body['session']['session_id']}").status_code == 404


def test_selection_is_frozen_after_signing(client):
    session_id = open_session(client)["session"]["session_id"]
    base = f"/v1/sessions/{session_id}"
    client.post(f"{base}/signing:start", json=GEOMETRY)
    client.put(f"{base}/payment", json={"payment_type": "vista", "payment_method": "PIX"})
    client.post(f"{base}/signature/gestures", json={"events": STROKE})
    assert client.post(f"{base}/signature:submit").json()["session"]["step"] == "confirming"

    edited = client.put(f"{base}/ledger/1", json={"included": False}).json()
    cleared = client.post(f"{base}/ledger:set-all", json={"included": False}).json()

    assert not edited["accepted"]
    assert not cleared["accepted"]
    assert cleared["session"]["all_selected"]
    assert cleared["session"]["terms"]["final_total"] == 940
