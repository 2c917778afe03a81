import pytest
from fastapi.testclient import TestClient

from app.dependencies import tickets as ticket_deps
from app.dependencies.auth import User, get_current_user
from app.main import create_app
from app.tickets.attachments import LocalBlobStore
from app.tickets.directory import Role
from app.tickets.engine import TicketLifecycleEngine
from app.tickets.service import TicketService

USERS = {
    "admin": User("admin-1", Role.ADMIN),
    "agent": User("agent-1", Role.CUSTOMER_SERVICE),
    "sales": User("sales-1", Role.SALES),
    "other_sales": User("sales-2", Role.SALES),
}


class Actor:
    def __init__(self) -> None:
        self.user = USERS["sales"]

    def use(self, name: str) -> None:
        self.user = USERS[name]


def _client_for(service, actor):
    app = create_app()

    async def override_service():
        return service

    async def override_user():
        return actor.user

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_service
    app.dependency_overrides[get_current_user] = override_user
    return TestClient(app)


@pytest.fixture
def ticket_client(service, blob_store):
    actor = Actor()
    return _client_for(service, actor), actor, blob_store


def _create(client, **overrides):
    payload = {
        "title": "Internet mati",
        "category": "Service Interruption",
        "customer_name": "Budi",
        "customer_whatsapp": "0812 3456 789",
    }
    payload.update(overrides)
    response = client.post("/tickets", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_ticket_returns_created(ticket_client):
    client, _, _ = ticket_client

    body = _create(client)

    assert body["ticket_number"] == "BKT-20240314-0001"
    assert body["status"] == "open"
    assert body["priority"] == "medium"
    assert body["created_by"] == "sales-1"
    assert body["whatsapp_link"] == "https://wa.me/628123456789"
    assert body["sla_status"] == "green"
    assert body["version"] == 1


def test_create_ticket_with_unknown_category_is_unprocessable(ticket_client):
    client, _, _ = ticket_client

    response = client.post("/tickets", json={"title": "x", "category": "Spam"})

    assert response.status_code == 422
    assert response.json()["detail"]["fields"] == ["category"]


def test_sales_cannot_update_tickets(ticket_client):
    client, _, _ = ticket_client
    ticket = _create(client)

    response = client.patch(f"/tickets/{ticket['id']}", json={"priority": "high"})

    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"


def test_assignment_moves_ticket_in_progress(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")

    response = client.patch(f"/tickets/{ticket['id']}", json={"assigned_to": "agent-2"})

    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"
    assert response.json()["assigned_to"] == "agent-2"


def test_empty_assignee_unassigns(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")
    client.patch(f"/tickets/{ticket['id']}", json={"assigned_to": "agent-1"})

    response = client.patch(f"/tickets/{ticket['id']}", json={"assigned_to": ""})

    assert response.status_code == 200
    assert response.json()["assigned_to"] is None
    assert response.json()["status"] == "open"


def test_assigning_unknown_agent_is_not_found(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")

    response = client.patch(f"/tickets/{ticket['id']}", json={"assigned_to": "ghost"})

    assert response.status_code == 404


def test_bogus_status_is_rejected(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")

    response = client.patch(f"/tickets/{ticket['id']}", json={"status": "bogus"})

    assert response.status_code == 422
    assert response.json()["detail"]["fields"] == ["status"]


def test_empty_patch_is_rejected(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")

    response = client.patch(f"/tickets/{ticket['id']}", json={"expected_version": 1})

    assert response.status_code == 400


def test_stale_expected_version_conflicts(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")

    first = client.patch(f"/tickets/{ticket['id']}", json={"priority": "high", "expected_version": 1})
    second = client.patch(f"/tickets/{ticket['id']}", json={"priority": "low", "expected_version": 1})

    assert first.status_code == 200
    assert first.json()["version"] == 2
    assert second.status_code == 409
    assert client.get(f"/tickets/{ticket['id']}").json()["priority"] == "high"


def test_missing_ticket_is_not_found(ticket_client):
    client, actor, _ = ticket_client
    actor.use("agent")

    assert client.get("/tickets/missing").status_code == 404
    assert client.patch("/tickets/missing", json={"title": "x"}).status_code == 404


def test_sales_only_see_their_own_tickets(ticket_client):
    client, actor, _ = ticket_client
    mine = _create(client)
    actor.use("other_sales")
    theirs = _create(client, title="Tagihan")

    listed = client.get("/tickets").json()
    assert [ticket["id"] for ticket in listed] == [theirs["id"]]
    assert client.get(f"/tickets/{mine['id']}").status_code == 404

    actor.use("agent")
    assert {ticket["id"] for ticket in client.get("/tickets").json()} == {mine["id"], theirs["id"]}


def test_queue_lists_active_tickets(ticket_client):
    client, actor, _ = ticket_client
    active = _create(client)
    done = _create(client)
    actor.use("agent")
    client.patch(f"/tickets/{done['id']}", json={"status": "resolved", "resolution_steps": "Reset"})

    response = client.get("/tickets/queue")

    assert response.status_code == 200
    assert [ticket["id"] for ticket in response.json()] == [active["id"]]


def test_queue_requires_agent(ticket_client):
    client, _, _ = ticket_client
    assert client.get("/tickets/queue").status_code == 403


def test_upload_and_sign_attachment(ticket_client):
    client, _, blob_store = ticket_client
    ticket = _create(client)

    response = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("bukti.png", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 201
    [path] = response.json()["attachments"]
    assert blob_store.objects[path] == b"\x89PNG"

    urls = client.get(f"/tickets/{ticket['id']}/attachments").json()
    assert urls[path].startswith("https://blobs.test/")


def test_upload_rejects_disallowed_type(ticket_client):
    client, _, blob_store = ticket_client
    ticket = _create(client)

    response = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("script.sh", b"echo", "application/x-sh")},
    )

    assert response.status_code == 422
    assert blob_store.objects == {}


def test_remove_attachment(ticket_client):
    client, actor, blob_store = ticket_client
    ticket = _create(client)
    uploaded = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("bukti.png", b"png", "image/png")},
    ).json()
    path = uploaded["attachments"][0]
    actor.use("agent")

    response = client.delete(f"/tickets/{ticket['id']}/attachments", params={"path": path})

    assert response.status_code == 200
    assert response.json()["attachments"] == []
    assert path not in blob_store.objects


def test_only_admin_can_delete(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    actor.use("agent")

    assert client.delete(f"/tickets/{ticket['id']}").status_code == 403

    actor.use("admin")
    assert client.delete(f"/tickets/{ticket['id']}").status_code == 204
    assert client.get(f"/tickets/{ticket['id']}").status_code == 404


def test_partial_deletion_reports_unreleased_attachments(ticket_client):
    client, actor, blob_store = ticket_client
    ticket = _create(client)
    uploaded = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("bukti.png", b"png", "image/png")},
    ).json()
    path = uploaded["attachments"][0]
    blob_store.failing.add(path)
    actor.use("admin")

    response = client.delete(f"/tickets/{ticket['id']}")

    assert response.status_code == 502
    body = response.json()
    assert body["row_deleted"] is True
    assert body["failed"] == [path]

    blob_store.failing.clear()
    retry = client.post(f"/tickets/{ticket['id']}/release", json={"references": body["failed"]})
    assert retry.status_code == 200
    assert retry.json()["released"] == [path]
    assert blob_store.objects == {}


def test_reports_endpoints(ticket_client):
    client, actor, _ = ticket_client
    ticket = _create(client)
    _create(client)
    actor.use("agent")
    client.patch(f"/tickets/{ticket['id']}", json={"status": "closed"})

    sla = client.get("/reports/sla", params={"months": 2})
    resolution = client.get("/reports/resolution")

    assert sla.status_code == 200
    assert [item["month"] for item in sla.json()] == ["2024-02", "2024-03"]
    assert sla.json()[1]["green"] == 2
    assert resolution.json() == {"resolved": 1, "unresolved": 1, "resolved_ratio": 0.5}


def test_reports_forbidden_for_sales(ticket_client):
    client, _, _ = ticket_client
    assert client.get("/reports/sla").status_code == 403


def test_service_unavailable_without_configuration():
    app = create_app()
    app.dependency_overrides[get_current_user] = lambda: USERS["admin"]
    client = TestClient(app)

    assert client.get("/tickets").status_code == 503


def test_ping_is_public():
    client = TestClient(create_app())
    assert client.get("/ping").json() == {"status": "ok"}


def test_release_refused_while_ticket_exists(ticket_client):
    client, actor, blob_store = ticket_client
    ticket = _create(client)
    uploaded = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("bukti.png", b"png", "image/png")},
    ).json()
    path = uploaded["attachments"][0]
    actor.use("admin")

    response = client.post(f"/tickets/{ticket['id']}/release", json={"references": [path]})

    assert response.status_code == 409
    assert path in blob_store.objects
    assert client.get(f"/tickets/{ticket['id']}").json()["attachments"] == [path]


def test_release_rejects_paths_of_other_tickets(ticket_client):
    client, actor, blob_store = ticket_client
    ticket = _create(client)
    uploaded = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("bukti.png", b"png", "image/png")},
    ).json()
    path = uploaded["attachments"][0]
    actor.use("admin")

    response = client.post("/tickets/gone/release", json={"references": [path]})

    assert response.status_code == 422
    assert path in blob_store.objects


def test_signed_attachment_link_downloads_file(repository, directory, clock, tmp_path):
    store = LocalBlobStore(tmp_path, url_base="/attachments", signing_secret="k3y")
    service = TicketService(repository=repository, directory=directory, blob_store=store, clock=clock)
    client = _client_for(service, Actor())
    ticket = _create(client)
    uploaded = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("bukti.png", b"\x89PNG-data", "image/png")},
    ).json()
    path = uploaded["attachments"][0]

    url = client.get(f"/tickets/{ticket['id']}/attachments").json()[path]
    response = client.get(url)

    assert response.status_code == 200
    assert response.content == b"\x89PNG-data"

    tampered = url.rsplit("signature=", 1)[0] + "signature=" + "0" * 64
    assert client.get(tampered).status_code == 403
    assert client.get("/attachments/" + path, params={"expires": 0, "signature": "x"}).status_code == 403


def test_whatsapp_link_uses_configured_country_code(repository, directory, blob_store, clock):
    service = TicketService(
        repository=repository,
        directory=directory,
        blob_store=blob_store,
        clock=clock,
        engine=TicketLifecycleEngine(whatsapp_country_code="1"),
    )
    client = _client_for(service, Actor())

    body = _create(client, customer_whatsapp="555 123 4567")

    assert body["customer_whatsapp"] == "15551234567"
    assert body["whatsapp_link"] == "https://wa.me/15551234567"
