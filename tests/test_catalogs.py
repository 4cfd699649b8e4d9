"""Lookup catalog endpoints and default seeding."""

import pytest

from parish_census.services import catalog_service


def test_seed_defaults_is_idempotent(db):
    assert catalog_service.seed_defaults(db) == 0


@pytest.mark.asyncio
async def test_list_seeded_catalog(authed_client):
    res = await authed_client.get("/catalogs/sexes")
    assert res.status_code == 200, res.text
    body = res.json()
    assert [i["name"] for i in body["items"]] == ["Masculino", "Femenino", "Otro"]
    assert body["pagination"]["total"] == 3

    res = await authed_client.get("/catalogs/identification-types", params={"search": "cédula"})
    assert [i["code"] for i in res.json()["items"]] == ["CC", "CE"]


@pytest.mark.asyncio
async def test_unknown_catalog_is_404(authed_client):
    res = await authed_client.get("/catalogs/colors")
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_admin_manages_catalog_items(admin_client):
    res = await admin_client.post("/catalogs/municipalities", json={"name": "Barbosa"})
    assert res.status_code == 201, res.text
    municipality_id = res.json()["data"]["id"]

    res = await admin_client.post(
        "/catalogs/sectors", json={"name": "El Carmen", "municipality_id": municipality_id}
    )
    assert res.status_code == 201, res.text
    sector = res.json()["data"]
    assert sector["municipality_id"] == municipality_id

    res = await admin_client.post("/catalogs/sectors", json={"name": "el carmen"})
    assert res.status_code == 409

    res = await admin_client.put(
        f"/catalogs/sectors/{sector['id']}", json={"description": "Zona norte"}
    )
    assert res.status_code == 200, res.text
    assert res.json()["data"]["description"] == "Zona norte"
    assert res.json()["data"]["name"] == "El Carmen"

    res = await admin_client.delete(f"/catalogs/sectors/{sector['id']}")
    assert res.status_code == 200
    assert (await admin_client.get(f"/catalogs/sectors/{sector['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_identification_types_need_a_code(admin_client):
    res = await admin_client.post("/catalogs/identification-types", json={"name": "NUIP"})
    assert res.status_code == 400

    res = await admin_client.post(
        "/catalogs/identification-types", json={"name": "NUIP", "code": "nuip"}
    )
    assert res.status_code == 201, res.text
    assert res.json()["data"]["code"] == "NUIP"


@pytest.mark.asyncio
async def test_item_in_use_cannot_be_deleted(authed_client, admin_client, make_survey_payload):
    created = await authed_client.post("/surveys", json=make_survey_payload())
    assert created.status_code == 201

    res = await admin_client.delete("/catalogs/housing-types/1")
    assert res.status_code == 409

    res = await admin_client.get("/catalogs/housing-types/1")
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_surveyor_cannot_modify_catalogs(authed_client):
    res = await authed_client.post("/catalogs/sectors", json={"name": "Nuevo"})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.json()["env"] == "test"
