"""Tests for customer ticket endpoints and comments."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import select

from helpdesk.core import settings
from helpdesk.models.notification import Notification


async def _notifications(db_session, user_id: int, type: str | None = None) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if type:
        query = query.where(Notification.type == type)
    return list((await db_session.execute(query)).scalars().all())


async def _create(client, headers, files=None, **fields):
    data = {"title": "Cannot log in", "description": "Password rejected"}
    data.update({k: str(v) for k, v in fields.items()})
    return await client.post("/user/tickets", headers=headers, data=data, files=files)


def _stored_files(subdir: str) -> set[Path]:
    return set((Path(settings.upload_dir) / subdir).glob("*"))


# --- Create ---


@pytest.mark.asyncio
async def test_create_ticket(
    async_client, db_session, customer, customer_headers, admin, attribute_factory, mail_outbox
):
    category = await attribute_factory("category", "Network")
    priority = await attribute_factory("priority", "High")

    response = await _create(
        async_client, customer_headers, category_id=category.id, priority_id=priority.id
    )
    assert response.status_code == 201
    ticket = response.json()["data"]
    assert ticket["status"] == "new"
    assert ticket["owner"]["id"] == customer.id
    assert ticket["category"] == {"id": category.id, "name": "Network"}
    assert ticket["priority"]["name"] == "High"
    assert ticket["assignee"] is None

    notes = await _notifications(db_session, admin.id, "ticket_new")
    assert len(notes) == 1
    assert f"#{ticket['id']}" in notes[0].content

    # Confirmation to the customer and an alert to the admin
    assert mail_outbox.pending == 2


@pytest.mark.asyncio
async def test_create_ticket_skips_mail_for_unverified_users(
    async_client, user_factory, auth_headers, mail_outbox
):
    await user_factory("admin", is_verified=False)
    owner = await user_factory("customer", is_verified=False)
    response = await _create(async_client, auth_headers(owner))
    assert response.status_code == 201
    assert mail_outbox.pending == 0


@pytest.mark.asyncio
async def test_create_ticket_unknown_attribute(async_client, customer_headers):
    response = await _create(async_client, customer_headers, category_id=999)
    assert response.status_code == 400
    assert response.json()["message"] == "Unknown category: 999"


@pytest.mark.asyncio
async def test_create_ticket_requires_title(async_client, customer_headers):
    response = await async_client.post(
        "/user/tickets", headers=customer_headers, data={"description": "no title"}
    )
    assert response.status_code == 422
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_create_ticket_with_attachment(async_client, customer_headers):
    response = await _create(
        async_client,
        customer_headers,
        files={"attachment": ("error log.txt", b"stack trace", "text/plain")},
    )
    assert response.status_code == 201
    path = response.json()["data"]["attachment_path"]
    assert path.startswith("/uploads/tickets/")
    assert path.endswith("_error_log.txt")

    stored = Path(settings.upload_dir) / path.removeprefix("/uploads/")
    assert stored.read_bytes() == b"stack trace"

    download = await async_client.get(path)
    assert download.status_code == 200
    assert download.content == b"stack trace"
    assert download.headers["content-disposition"] == "attachment"


@pytest.mark.asyncio
async def test_create_ticket_attachment_too_large(async_client, customer_headers, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 1024)
    response = await _create(
        async_client,
        customer_headers,
        files={"attachment": ("big.bin", b"x" * 2048, "application/octet-stream")},
    )
    assert response.status_code == 413


@pytest.mark.asyncio
async def test_create_ticket_requires_login(async_client):
    response = await _create(async_client, {})
    assert response.status_code == 401


# --- List ---


@pytest.mark.asyncio
async def test_customers_only_see_their_own_tickets(
    async_client, customer, customer_headers, user_factory, ticket_factory
):
    other = await user_factory("customer")
    await ticket_factory(customer, "Mine")
    await ticket_factory(other, "Someone else's")

    response = await async_client.get("/user/tickets", headers=customer_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert [t["title"] for t in body["items"]] == ["Mine"]


@pytest.mark.asyncio
async def test_staff_see_assigned_and_admins_see_all(
    async_client, customer, staff, staff_headers, admin_headers, ticket_factory
):
    await ticket_factory(customer, "Assigned", assigned_to=staff.id)
    await ticket_factory(customer, "Unassigned")

    staff_view = (await async_client.get("/user/tickets", headers=staff_headers)).json()
    assert [t["title"] for t in staff_view["items"]] == ["Assigned"]

    admin_view = (await async_client.get("/user/tickets", headers=admin_headers)).json()
    assert admin_view["total"] == 2


@pytest.mark.asyncio
async def test_list_is_newest_first_and_paged(
    async_client, customer, customer_headers, ticket_factory
):
    for i in range(12):
        await ticket_factory(customer, f"Ticket {i}")

    first = (await async_client.get("/user/tickets?limit=5", headers=customer_headers)).json()
    assert first["total"] == 12
    assert first["pages"] == 3
    assert first["items"][0]["title"] == "Ticket 11"
    assert len(first["items"]) == 5

    last = (
        await async_client.get("/user/tickets?limit=5&page=3", headers=customer_headers)
    ).json()
    assert [t["title"] for t in last["items"]] == ["Ticket 1", "Ticket 0"]


@pytest.mark.asyncio
async def test_out_of_range_paging_falls_back_to_defaults(
    async_client, customer, customer_headers, ticket_factory
):
    await ticket_factory(customer)
    body = (
        await async_client.get("/user/tickets?limit=500&page=0", headers=customer_headers)
    ).json()
    assert body["page"] == 1
    assert body["limit"] == 10


@pytest.mark.asyncio
async def test_list_filters(
    async_client, customer, customer_headers, ticket_factory, attribute_factory
):
    network = await attribute_factory("category", "Network")
    await ticket_factory(customer, "VPN keeps dropping", category_id=network.id)
    await ticket_factory(customer, "Printer jam", status="in_progress")
    await ticket_factory(customer, "Mouse broken", description="The VPN dongle too")

    async def titles(query: str) -> set[str]:
        response = await async_client.get(f"/user/tickets?{query}", headers=customer_headers)
        assert response.status_code == 200
        return {t["title"] for t in response.json()["items"]}

    assert await titles("status=in_progress") == {"Printer jam"}
    assert await titles(f"category_id={network.id}") == {"VPN keeps dropping"}
    assert await titles("search=vpn") == {"VPN keeps dropping", "Mouse broken"}

    today = datetime.now(UTC).date()
    yesterday = today - timedelta(days=1)
    assert len(await titles(f"from_date={today}&to_date={today}")) == 3
    assert await titles(f"to_date={yesterday}") == set()


@pytest.mark.asyncio
async def test_list_rejects_unknown_status(async_client, customer_headers):
    response = await async_client.get("/user/tickets?status=bogus", headers=customer_headers)
    assert response.status_code == 422


# --- Detail ---


@pytest.mark.asyncio
async def test_get_ticket(async_client, customer, customer_headers, ticket_factory):
    ticket = await ticket_factory(customer)
    response = await async_client.get(f"/user/tickets/{ticket.id}", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["id"] == ticket.id


@pytest.mark.asyncio
async def test_invisible_ticket_looks_missing(
    async_client, user_factory, customer_headers, staff_headers, ticket_factory
):
    other = await user_factory("customer")
    ticket = await ticket_factory(other)

    for headers in (customer_headers, staff_headers):
        response = await async_client.get(f"/user/tickets/{ticket.id}", headers=headers)
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Ticket not found"}


@pytest.mark.asyncio
async def test_new_reply_flag_clears_when_owner_views(
    async_client, customer, customer_headers, admin_headers, ticket_factory
):
    ticket = await ticket_factory(customer)

    # The owner's own comments never count as new replies
    await async_client.post(
        f"/user/tickets/{ticket.id}/comments",
        headers=customer_headers,
        data={"content": "Any news?"},
    )
    listing = (await async_client.get("/user/tickets", headers=customer_headers)).json()
    assert listing["items"][0]["has_new_reply"] is False

    await async_client.post(
        f"/admin/tickets/{ticket.id}/comments", headers=admin_headers, data={"content": "On it"}
    )
    listing = (await async_client.get("/user/tickets", headers=customer_headers)).json()
    assert listing["items"][0]["has_new_reply"] is True

    await async_client.get(f"/user/tickets/{ticket.id}", headers=customer_headers)
    listing = (await async_client.get("/user/tickets", headers=customer_headers)).json()
    assert listing["items"][0]["has_new_reply"] is False


@pytest.mark.asyncio
async def test_viewing_does_not_touch_updated_at(
    async_client, db_session, customer, customer_headers, ticket_factory
):
    ticket = await ticket_factory(customer)
    before = ticket.updated_at

    await async_client.get(f"/user/tickets/{ticket.id}", headers=customer_headers)
    await db_session.refresh(ticket)
    assert ticket.updated_at == before
    assert ticket.last_viewed_comment_at is not None


# --- Update / delete ---


@pytest.mark.asyncio
async def test_owner_updates_new_ticket(
    async_client, db_session, customer, customer_headers, admin, ticket_factory
):
    ticket = await ticket_factory(customer)
    response = await async_client.put(
        f"/user/tickets/{ticket.id}",
        headers=customer_headers,
        data={"title": "Cannot log in on mobile"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Cannot log in on mobile"
    assert data["description"] == "Smoke everywhere"
    assert len(await _notifications(db_session, admin.id, "ticket_update")) == 1


@pytest.mark.asyncio
async def test_update_only_while_new(async_client, customer, customer_headers, ticket_factory):
    ticket = await ticket_factory(customer, status="in_progress")
    response = await async_client.put(
        f"/user/tickets/{ticket.id}", headers=customer_headers, data={"title": "Changed"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_only_by_owner(async_client, user_factory, customer_headers, ticket_factory):
    other = await user_factory("customer")
    ticket = await ticket_factory(other)
    response = await async_client.put(
        f"/user/tickets/{ticket.id}", headers=customer_headers, data={"title": "Mine now"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rejected_update_does_not_store_attachment(
    async_client, user_factory, customer_headers, ticket_factory
):
    other = await user_factory("customer")
    ticket = await ticket_factory(other)
    before = _stored_files("tickets")

    response = await async_client.put(
        f"/user/tickets/{ticket.id}",
        headers=customer_headers,
        data={"title": "Mine now"},
        files={"attachment": ("x.txt", b"payload", "text/plain")},
    )
    assert response.status_code == 403
    assert _stored_files("tickets") == before


@pytest.mark.asyncio
async def test_rejected_create_does_not_store_attachment(async_client, customer_headers):
    before = _stored_files("tickets")
    response = await _create(
        async_client,
        customer_headers,
        files={"attachment": ("y.txt", b"payload", "text/plain")},
        category_id=9999,
    )
    assert response.status_code == 400
    assert _stored_files("tickets") == before


@pytest.mark.asyncio
async def test_replacing_attachment_removes_old_file(async_client, customer_headers):
    created = await _create(
        async_client,
        customer_headers,
        files={"attachment": ("first.txt", b"first", "text/plain")},
    )
    ticket = created.json()["data"]
    old = Path(settings.upload_dir) / ticket["attachment_path"].removeprefix("/uploads/")
    assert old.exists()

    response = await async_client.put(
        f"/user/tickets/{ticket['id']}",
        headers=customer_headers,
        files={"attachment": ("second.txt", b"second", "text/plain")},
    )
    assert response.status_code == 200
    new_path = response.json()["data"]["attachment_path"]
    assert new_path.endswith("_second.txt")
    assert not old.exists()
    new = Path(settings.upload_dir) / new_path.removeprefix("/uploads/")
    assert new.read_bytes() == b"second"


@pytest.mark.asyncio
async def test_owner_deletes_new_ticket(
    async_client, db_session, customer, customer_headers, admin, ticket_factory
):
    ticket = await ticket_factory(customer)
    response = await async_client.delete(f"/user/tickets/{ticket.id}", headers=customer_headers)
    assert response.status_code == 200
    assert len(await _notifications(db_session, admin.id, "ticket_delete")) == 1

    response = await async_client.get(f"/user/tickets/{ticket.id}", headers=customer_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_not_allowed_once_resolved(
    async_client, customer, customer_headers, ticket_factory
):
    ticket = await ticket_factory(customer, status="resolved")
    response = await async_client.delete(f"/user/tickets/{ticket.id}", headers=customer_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deleting_ticket_removes_its_files(async_client, customer_headers):
    created = await _create(
        async_client,
        customer_headers,
        files={"attachment": ("ticket.txt", b"ticket", "text/plain")},
    )
    ticket = created.json()["data"]
    comment = await async_client.post(
        f"/user/tickets/{ticket['id']}/comments",
        headers=customer_headers,
        data={"content": "Screenshot attached"},
        files={"attachment": ("shot.png", b"png", "image/png")},
    )
    assert comment.status_code == 201
    stored = [
        Path(settings.upload_dir) / path.removeprefix("/uploads/")
        for path in (ticket["attachment_path"], comment.json()["data"]["attachment_path"])
    ]
    assert all(path.exists() for path in stored)

    response = await async_client.delete(f"/user/tickets/{ticket['id']}", headers=customer_headers)
    assert response.status_code == 200
    assert not any(path.exists() for path in stored)


# --- Comments ---


@pytest.mark.asyncio
async def test_customer_comment_notifies_admins_when_unassigned(
    async_client, db_session, customer, customer_headers, admin, ticket_factory
):
    ticket = await ticket_factory(customer)
    response = await async_client.post(
        f"/user/tickets/{ticket.id}/comments",
        headers=customer_headers,
        data={"content": "  Still broken  "},
    )
    assert response.status_code == 201
    comment = response.json()["data"]
    assert comment["content"] == "Still broken"
    assert comment["author_name"] == "Alice Customer"
    assert comment["author_role"] == "customer"
    assert len(await _notifications(db_session, admin.id, "ticket_comment")) == 1


@pytest.mark.asyncio
async def test_customer_comment_notifies_assignee(
    async_client, db_session, customer, customer_headers, staff, admin, ticket_factory
):
    ticket = await ticket_factory(customer, assigned_to=staff.id)
    await async_client.post(
        f"/user/tickets/{ticket.id}/comments", headers=customer_headers, data={"content": "Hello"}
    )
    assert len(await _notifications(db_session, staff.id, "ticket_comment")) == 1
    assert await _notifications(db_session, admin.id, "ticket_comment") == []


@pytest.mark.asyncio
async def test_staff_comment_notifies_owner(
    async_client, db_session, customer, staff, staff_headers, ticket_factory
):
    ticket = await ticket_factory(customer, assigned_to=staff.id)
    response = await async_client.post(
        f"/user/tickets/{ticket.id}/comments", headers=staff_headers, data={"content": "Rebooting"}
    )
    assert response.status_code == 201
    assert len(await _notifications(db_session, customer.id, "ticket_comment")) == 1


@pytest.mark.asyncio
async def test_staff_cannot_comment_on_unassigned_ticket(
    async_client, customer, staff_headers, ticket_factory
):
    ticket = await ticket_factory(customer)
    response = await async_client.post(
        f"/user/tickets/{ticket.id}/comments", headers=staff_headers, data={"content": "Hi"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_customer_cannot_comment_on_others_ticket(
    async_client, user_factory, customer_headers, ticket_factory
):
    other = await user_factory("customer")
    ticket = await ticket_factory(other)
    response = await async_client.post(
        f"/user/tickets/{ticket.id}/comments", headers=customer_headers, data={"content": "Hi"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_comment_requires_content(async_client, customer, customer_headers, ticket_factory):
    ticket = await ticket_factory(customer)
    response = await async_client.post(
        f"/user/tickets/{ticket.id}/comments", headers=customer_headers, data={"content": "   "}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reply_must_target_comment_on_same_ticket(
    async_client, customer, customer_headers, ticket_factory
):
    first = await ticket_factory(customer, "First")
    second = await ticket_factory(customer, "Second")
    parent = (
        await async_client.post(
            f"/user/tickets/{first.id}/comments", headers=customer_headers, data={"content": "A"}
        )
    ).json()["data"]

    response = await async_client.post(
        f"/user/tickets/{second.id}/comments",
        headers=customer_headers,
        data={"content": "B", "parent_id": str(parent["id"])},
    )
    assert response.status_code == 400

    response = await async_client.post(
        f"/user/tickets/{first.id}/comments",
        headers=customer_headers,
        data={"content": "B", "parent_id": str(parent["id"])},
    )
    assert response.status_code == 201
    assert response.json()["data"]["parent_id"] == parent["id"]


@pytest.mark.asyncio
async def test_list_comments_oldest_first(
    async_client, customer, customer_headers, admin_headers, ticket_factory
):
    ticket = await ticket_factory(customer)
    url = f"/user/tickets/{ticket.id}/comments"
    for headers, content in (
        (customer_headers, "one"),
        (admin_headers, "two"),
        (customer_headers, "three"),
    ):
        await async_client.post(url, headers=headers, data={"content": content})

    response = await async_client.get(url, headers=customer_headers)
    assert response.status_code == 200
    comments = response.json()["data"]
    assert [c["content"] for c in comments] == ["one", "two", "three"]
    assert comments[1]["author_role"] == "admin"
