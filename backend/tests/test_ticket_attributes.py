"""Tests for ticket categories, product types and priorities."""

import pytest

KINDS = ["categories", "product-types", "priorities"]


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", KINDS)
async def test_public_list_needs_no_login(async_client, admin_headers, kind):
    await async_client.post(f"/admin/ticket-{kind}", headers=admin_headers, json={"name": "First"})
    await async_client.post(f"/admin/ticket-{kind}", headers=admin_headers, json={"name": "Second"})

    response = await async_client.get(f"/ticket-{kind}")
    assert response.status_code == 200
    assert [item["name"] for item in response.json()["data"]] == ["First", "Second"]


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", KINDS)
async def test_admin_crud(async_client, admin_headers, kind):
    response = await async_client.post(
        f"/admin/ticket-{kind}", headers=admin_headers, json={"name": "  Hardware  "}
    )
    assert response.status_code == 201
    item = response.json()["data"]
    assert item["name"] == "Hardware"

    response = await async_client.put(
        f"/admin/ticket-{kind}/{item['id']}", headers=admin_headers, json={"name": "Devices"}
    )
    assert response.status_code == 200
    assert response.json()["data"] == {"id": item["id"], "name": "Devices"}

    response = await async_client.get(f"/admin/ticket-{kind}", headers=admin_headers)
    assert [i["name"] for i in response.json()["data"]] == ["Devices"]

    response = await async_client.delete(
        f"/admin/ticket-{kind}/{item['id']}", headers=admin_headers
    )
    assert response.status_code == 200
    assert (await async_client.get(f"/ticket-{kind}")).json()["data"] == []


@pytest.mark.asyncio
async def test_duplicate_names_ignore_case(async_client, admin_headers):
    await async_client.post(
        "/admin/ticket-categories", headers=admin_headers, json={"name": "Network"}
    )
    response = await async_client.post(
        "/admin/ticket-categories", headers=admin_headers, json={"name": "NETWORK"}
    )
    assert response.status_code == 409
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_rename_to_existing_name_conflicts(async_client, admin_headers, attribute_factory):
    await attribute_factory("priority", "Low")
    high = await attribute_factory("priority", "High")

    response = await async_client.put(
        f"/admin/ticket-priorities/{high.id}", headers=admin_headers, json={"name": "low"}
    )
    assert response.status_code == 409

    # Renaming to its own name in another case is allowed
    response = await async_client.put(
        f"/admin/ticket-priorities/{high.id}", headers=admin_headers, json={"name": "HIGH"}
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_same_name_allowed_across_kinds(async_client, admin_headers):
    for kind in KINDS:
        response = await async_client.post(
            f"/admin/ticket-{kind}", headers=admin_headers, json={"name": "Other"}
        )
        assert response.status_code == 201


@pytest.mark.asyncio
async def test_missing_attribute(async_client, admin_headers):
    response = await async_client.put(
        "/admin/ticket-categories/999", headers=admin_headers, json={"name": "Ghost"}
    )
    assert response.status_code == 404
    response = await async_client.delete("/admin/ticket-categories/999", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_empty_name_rejected(async_client, admin_headers):
    response = await async_client.post(
        "/admin/ticket-categories", headers=admin_headers, json={"name": ""}
    )
    assert response.status_code == 422
    assert response.json()["message"].startswith("name:")


@pytest.mark.asyncio
async def test_changes_are_admin_only(
    async_client, staff_headers, customer_headers, attribute_factory
):
    category = await attribute_factory("category", "Network")
    for headers in (staff_headers, customer_headers):
        assert (
            await async_client.post(
                "/admin/ticket-categories", headers=headers, json={"name": "Sneaky"}
            )
        ).status_code == 403
        assert (
            await async_client.delete(f"/admin/ticket-categories/{category.id}", headers=headers)
        ).status_code == 403
        assert (
            await async_client.get("/admin/ticket-categories", headers=headers)
        ).status_code == 403
