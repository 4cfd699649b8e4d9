"""Stage-based survey drafts: stages, members, versioning and completion."""

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from parish_census.core.config import settings
from parish_census.db.enums import Role
from parish_census.db.models import (
    Family,
    FamilyHousingType,
    Person,
    SurveyAuditLog,
    SurveyDraft,
)
from parish_census.services import survey_draft_service
from parish_census.services.survey_draft_service import SurveyDraftNotFoundError

DRAFT_HEADER = {
    "sector": "San José",
    "family_head": "Pérez",
    "address": "Carrera 7 # 10-20",
    "phone": "311-2233",
    "housing_type": "Apartamento",
}


async def _create_draft(client, **overrides) -> dict:
    res = await client.post("/surveys/drafts", json={**DRAFT_HEADER, **overrides})
    assert res.status_code == 201, res.text
    return res.json()["data"]


async def _save_stage(client, draft_id, stage, data, **extra):
    return await client.put(
        f"/surveys/{draft_id}/stages/{stage}", json={"data": data, **extra}
    )


async def _fill_all_stages(client, draft_id, total):
    for stage in range(1, total + 1):
        res = await _save_stage(client, draft_id, stage, {"answered": f"stage {stage}"})
        assert res.status_code == 200, res.text


# =============================================================================
# Creation & stages
# =============================================================================

@pytest.mark.asyncio
async def test_create_draft_starts_at_version_one(authed_client, test_user):
    draft = await _create_draft(authed_client)

    assert draft["status"] == "draft"
    assert draft["version"] == 1
    assert draft["progress"] == 0
    assert draft["current_stage"] == 1
    assert draft["total_stages"] == settings.SURVEY_TOTAL_STAGES
    assert draft["user_id"] == str(test_user.id)
    assert draft["stages_data"] == []


@pytest.mark.asyncio
async def test_resaving_a_stage_is_idempotent_but_bumps_version(authed_client):
    draft = await _create_draft(authed_client)

    first = await _save_stage(authed_client, draft["id"], 1, {"vivienda": "propia", "pisos": 2})
    assert first.status_code == 200, first.text
    assert first.json()["data"]["version"] == 2
    assert first.json()["data"]["progress"] == 25
    assert first.json()["data"]["status"] == "in_progress"

    second = await _save_stage(authed_client, draft["id"], 1, {"vivienda": "propia", "pisos": 2})
    assert second.status_code == 200, second.text
    assert second.json()["data"]["version"] == 3
    assert second.json()["data"]["progress"] == 25

    res = await authed_client.get(f"/surveys/drafts/{draft['id']}")
    stages = res.json()["stages_data"]
    assert len(stages) == 1
    assert stages[0]["stage"] == 1
    assert stages[0]["data"] == {"vivienda": "propia", "pisos": 2}


@pytest.mark.asyncio
async def test_stage_data_is_merged(authed_client):
    draft = await _create_draft(authed_client)
    await _save_stage(authed_client, draft["id"], 2, {"agua": "acueducto"})
    await _save_stage(authed_client, draft["id"], 2, {"basuras": "recolector"})

    res = await authed_client.get(f"/surveys/drafts/{draft['id']}")
    body = res.json()
    assert body["stages_data"][1]["data"] == {"agua": "acueducto", "basuras": "recolector"}
    assert body["stages_data"][0]["data"] == {}
    assert body["current_stage"] == 2
    assert body["last_saved_stage"] == 2


@pytest.mark.asyncio
async def test_stage_outside_range_is_rejected(authed_client):
    draft = await _create_draft(authed_client)

    res = await _save_stage(authed_client, draft["id"], settings.SURVEY_TOTAL_STAGES + 1, {"x": 1})
    assert res.status_code == 400

    res = await _save_stage(authed_client, draft["id"], 0, {"x": 1})
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_stale_expected_version_conflicts(authed_client):
    draft = await _create_draft(authed_client)

    res = await _save_stage(authed_client, draft["id"], 1, {"a": 1}, expected_version=99)
    assert res.status_code == 409
    assert res.json()["detail"] == "Version conflict: expected 99, got 1"

    res = await _save_stage(authed_client, draft["id"], 1, {"a": 1}, expected_version=1)
    assert res.status_code == 200
    assert res.json()["data"]["version"] == 2


# =============================================================================
# Completion
# =============================================================================

@pytest.mark.asyncio
async def test_completion_requires_every_stage(authed_client, monkeypatch):
    monkeypatch.setattr(settings, "SURVEY_TOTAL_STAGES", 3)
    draft = await _create_draft(authed_client)
    assert draft["total_stages"] == 3

    await _save_stage(authed_client, draft["id"], 1, {"a": 1})
    res = await _save_stage(authed_client, draft["id"], 3, {"c": 3})
    assert res.json()["data"]["progress"] == 67

    res = await authed_client.post(f"/surveys/{draft['id']}/complete")
    assert res.status_code == 400
    detail = res.json()["detail"]
    assert detail["data"]["missing_stages"] == [2]
    assert detail["message"] == "Survey incomplete. 2/3 stages completed. Missing stages: 2"


@pytest.mark.asyncio
async def test_blank_stage_does_not_count(authed_client, monkeypatch):
    monkeypatch.setattr(settings, "SURVEY_TOTAL_STAGES", 2)
    draft = await _create_draft(authed_client)
    await _save_stage(authed_client, draft["id"], 1, {"a": 1})
    res = await _save_stage(authed_client, draft["id"], 2, {"notes": "   ", "list": []})
    assert res.json()["data"]["progress"] == 50

    res = await authed_client.post(f"/surveys/{draft['id']}/complete")
    assert res.status_code == 400
    assert res.json()["detail"]["data"]["missing_stages"] == [2]


@pytest.mark.asyncio
async def test_complete_draft_creates_family_and_members(authed_client, db):
    draft = await _create_draft(authed_client)
    await _fill_all_stages(authed_client, draft["id"], draft["total_stages"])
    for names in ("Laura Marcela", "Andrés"):
        res = await authed_client.post(
            f"/surveys/{draft['id']}/members",
            json={"names": names, "sex": "F" if names.startswith("L") else "M"},
        )
        assert res.status_code == 201, res.text

    res = await authed_client.post(f"/surveys/{draft['id']}/complete", json={})
    assert res.status_code == 200, res.text
    data = res.json()["data"]

    assert data["members_created"] == 2
    assert data["skipped_members"] == []
    assert data["draft"]["status"] == "completed"
    assert data["draft"]["progress"] == 100
    assert data["draft"]["completed_at"] is not None
    assert data["draft"]["family_id"] == data["family_id"]

    family = db.get(Family, data["family_id"])
    assert family.surname == "Pérez"
    assert family.phone == "311-2233"
    assert family.household_size == 2
    assert family.housing_type_label == "Apartamento"
    assert family.sector_label == "San José"

    housing_ids = db.execute(
        select(FamilyHousingType.housing_type_id).where(FamilyHousingType.family_id == family.id)
    ).scalars().all()
    assert housing_ids == [2]

    persons = db.execute(
        select(Person).where(Person.family_id == family.id).order_by(Person.id)
    ).scalars().all()
    assert [(p.first_name, p.middle_name) for p in persons] == [("Laura", "Marcela"), ("Andrés", None)]
    assert all(p.identification.startswith("TEMP_") for p in persons)


@pytest.mark.asyncio
async def test_terminal_drafts_reject_further_changes(authed_client):
    draft = await _create_draft(authed_client)
    await _fill_all_stages(authed_client, draft["id"], draft["total_stages"])
    assert (await authed_client.post(f"/surveys/{draft['id']}/complete")).status_code == 200

    res = await _save_stage(authed_client, draft["id"], 1, {"late": True})
    assert res.status_code == 409
    assert (await authed_client.post(f"/surveys/{draft['id']}/complete")).status_code == 409
    assert (await authed_client.post(f"/surveys/{draft['id']}/cancel")).status_code == 409


@pytest.mark.asyncio
async def test_completion_without_phone_is_rejected(authed_client, db):
    draft = await _create_draft(authed_client, phone=None)
    await _fill_all_stages(authed_client, draft["id"], draft["total_stages"])

    res = await authed_client.post(f"/surveys/{draft['id']}/complete")
    assert res.status_code == 400
    assert db.execute(select(func.count()).select_from(Family)).scalar_one() == 0


@pytest.mark.asyncio
async def test_completion_hits_duplicate_guard(authed_client, db, make_survey_payload):
    intake = await authed_client.post("/surveys", json=make_survey_payload())
    assert intake.status_code == 201

    draft = await _create_draft(
        authed_client, family_head="García", phone="310-0001", address="Calle 1 # 2-3"
    )
    await _fill_all_stages(authed_client, draft["id"], draft["total_stages"])

    res = await authed_client.post(f"/surveys/{draft['id']}/complete")
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "DUPLICATE_FAMILY"

    res = await authed_client.get(f"/surveys/drafts/{draft['id']}")
    assert res.json()["status"] == "in_progress"


@pytest.mark.asyncio
async def test_linked_draft_completes_as_resurvey(authed_client, db, make_survey_payload):
    intake = await authed_client.post("/surveys", json=make_survey_payload())
    assert intake.status_code == 201, intake.text
    family_id = intake.json()["data"]["family_id"]

    draft = await _create_draft(authed_client, family_id=family_id)
    assert draft["family_id"] == family_id
    await _fill_all_stages(authed_client, draft["id"], draft["total_stages"])
    for member in (
        {"names": "María José", "identification_number": "43000111"},
        {"names": "Samuel", "birth_date": "2015-04-10"},
    ):
        res = await authed_client.post(f"/surveys/{draft['id']}/members", json=member)
        assert res.status_code == 201, res.text

    res = await authed_client.post(f"/surveys/{draft['id']}/complete")
    assert res.status_code == 200, res.text
    data = res.json()["data"]

    assert data["family_id"] == family_id
    assert data["members_created"] == 1
    assert data["skipped_members"] == [
        {"member_index": 0, "kind": "living", "reason": "Already registered in this family"}
    ]

    family = db.get(Family, family_id)
    assert family.survey_count == 2
    assert family.household_size == 2
    assert db.execute(select(func.count()).select_from(Family)).scalar_one() == 1
    persons = db.execute(
        select(Person.first_name).where(Person.family_id == family_id).order_by(Person.id)
    ).scalars().all()
    assert persons == ["María", "Samuel"]


@pytest.mark.asyncio
async def test_draft_for_unknown_family_is_404(authed_client, db):
    res = await authed_client.post("/surveys/drafts", json={**DRAFT_HEADER, "family_id": 424242})
    assert res.status_code == 404
    assert db.execute(select(func.count()).select_from(SurveyDraft)).scalar_one() == 0


@pytest.mark.asyncio
async def test_database_failure_during_completion_rolls_back(authed_client, db, monkeypatch):
    draft = await _create_draft(authed_client)
    await _fill_all_stages(authed_client, draft["id"], draft["total_stages"])
    await authed_client.post(f"/surveys/{draft['id']}/members", json={"names": "Rosa"})

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", failing_commit)
    res = await authed_client.post(f"/surveys/{draft['id']}/complete")
    monkeypatch.undo()

    assert res.status_code == 500
    assert res.json()["detail"]["status"] == "error"
    assert db.execute(select(func.count()).select_from(Family)).scalar_one() == 0
    assert db.execute(select(func.count()).select_from(Person)).scalar_one() == 0

    res = await authed_client.get(f"/surveys/drafts/{draft['id']}")
    assert res.json()["status"] == "in_progress"
    assert res.json()["family_id"] is None


# =============================================================================
# Cancel
# =============================================================================

@pytest.mark.asyncio
async def test_cancel_appends_reason(authed_client):
    draft = await _create_draft(authed_client, observations="Visita en la tarde")

    res = await authed_client.post(
        f"/surveys/{draft['id']}/cancel", json={"reason": "Family moved away"}
    )
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["status"] == "cancelled"
    assert data["observations"] == "Visita en la tarde\nCancelled: Family moved away"
    assert data["version"] == 2


@pytest.mark.asyncio
async def test_cancel_without_reason(authed_client):
    draft = await _create_draft(authed_client)

    res = await authed_client.post(f"/surveys/{draft['id']}/cancel")
    assert res.status_code == 200, res.text
    assert res.json()["data"]["observations"] == "Cancelled: No reason provided"


# =============================================================================
# Members
# =============================================================================

@pytest.mark.asyncio
async def test_members_soft_delete_and_restore(authed_client):
    draft = await _create_draft(authed_client)

    first = await authed_client.post(
        f"/surveys/{draft['id']}/members",
        json={"names": "Felipe", "birth_date": "2012-09-01", "sizes": {"shirt": "S"}},
    )
    assert first.status_code == 201, first.text
    member = first.json()["data"]["member"]
    assert member["display_order"] == 0
    assert member["active"] is True
    assert first.json()["data"]["version"] == 2

    second = await authed_client.post(f"/surveys/{draft['id']}/members", json={"names": "Valentina"})
    assert second.json()["data"]["member"]["display_order"] == 1

    res = await authed_client.delete(
        f"/surveys/{draft['id']}/members/{member['id']}", params={"expected_version": 3}
    )
    assert res.status_code == 200, res.text
    assert res.json()["data"]["version"] == 4

    body = (await authed_client.get(f"/surveys/drafts/{draft['id']}")).json()
    assert [m["names"] for m in body["family_members"]] == ["Valentina"]

    res = await authed_client.put(
        f"/surveys/{draft['id']}/members/{member['id']}",
        json={"names": "Felipe Andrés", "birth_date": "2012-09-01"},
    )
    assert res.status_code == 200, res.text
    assert res.json()["data"]["member"]["active"] is True

    body = (await authed_client.get(f"/surveys/drafts/{draft['id']}")).json()
    assert [m["names"] for m in body["family_members"]] == ["Felipe Andrés", "Valentina"]
    assert body["version"] == 5


@pytest.mark.asyncio
async def test_unknown_member_is_404(authed_client):
    draft = await _create_draft(authed_client)
    res = await authed_client.delete(f"/surveys/{draft['id']}/members/{uuid.uuid4()}")
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_member_version_conflict(authed_client):
    draft = await _create_draft(authed_client)
    res = await authed_client.post(
        f"/surveys/{draft['id']}/members", json={"names": "Rosa", "expected_version": 5}
    )
    assert res.status_code == 409


# =============================================================================
# Auto-save
# =============================================================================

@pytest.mark.asyncio
async def test_auto_save_round_trip(authed_client):
    draft = await _create_draft(authed_client)

    empty = await authed_client.get(f"/surveys/{draft['id']}/auto-save")
    assert empty.status_code == 200
    assert empty.json()["temp_data"] is None
    assert empty.json()["last_auto_save"] is None

    state = {"step": 3, "form": {"vivienda": "propia", "pisos": [1, 2]}}
    res = await authed_client.post(f"/surveys/{draft['id']}/auto-save", json={"temp_data": state})
    assert res.status_code == 200, res.text
    assert res.json()["data"]["version"] == 2

    res = await authed_client.get(f"/surveys/{draft['id']}/auto-save")
    assert res.json()["temp_data"] == state
    assert res.json()["last_auto_save"] is not None
    assert res.json()["version"] == 2


# =============================================================================
# Listing, statistics & access
# =============================================================================

@pytest.mark.asyncio
async def test_list_and_statistics(authed_client):
    first = await _create_draft(authed_client)
    await _create_draft(authed_client, family_head="Quintero", sector="La Ceja")
    await authed_client.post(f"/surveys/{first['id']}/cancel", json={"reason": "duplicado"})

    res = await authed_client.get("/surveys/drafts")
    assert res.status_code == 200
    assert res.json()["pagination"]["total"] == 2

    res = await authed_client.get("/surveys/drafts", params={"status": "cancelled"})
    assert [d["id"] for d in res.json()["items"]] == [first["id"]]

    res = await authed_client.get("/surveys/drafts", params={"sector": "la ceja"})
    assert [d["family_head"] for d in res.json()["items"]] == ["Quintero"]

    stats = (await authed_client.get("/surveys/drafts/statistics")).json()
    assert stats == {
        "total": 2,
        "draft": 1,
        "in_progress": 0,
        "completed": 0,
        "cancelled": 1,
        "completion_rate": 0.0,
    }


@pytest.mark.asyncio
async def test_coordinator_reads_but_cannot_write(authed_client, coordinator_client):
    draft = await _create_draft(authed_client)

    res = await coordinator_client.get(f"/surveys/drafts/{draft['id']}")
    assert res.status_code == 200

    res = await _save_stage(coordinator_client, draft["id"], 1, {"a": 1})
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_admin_may_edit_any_draft(authed_client, admin_client):
    draft = await _create_draft(authed_client)

    res = await _save_stage(admin_client, draft["id"], 1, {"revisado": True})
    assert res.status_code == 200, res.text


@pytest.mark.asyncio
async def test_other_surveyor_sees_not_found(authed_client, db):
    draft = await _create_draft(authed_client)

    with pytest.raises(SurveyDraftNotFoundError):
        survey_draft_service.get_draft(db, uuid.UUID(draft["id"]), uuid.uuid4(), Role.SURVEYOR)


@pytest.mark.asyncio
async def test_mutations_are_audited(authed_client, db):
    draft = await _create_draft(authed_client)
    await _save_stage(authed_client, draft["id"], 1, {"a": 1})
    await authed_client.post(f"/surveys/{draft['id']}/members", json={"names": "Rosa"})

    actions = db.execute(
        select(SurveyAuditLog.action)
        .where(SurveyAuditLog.draft_id == uuid.UUID(draft["id"]))
        .order_by(SurveyAuditLog.created_at)
    ).scalars().all()
    assert sorted(actions) == ["create", "member_add", "stage_save"]
