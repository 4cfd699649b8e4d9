"""Survey reader: legacy deceased rows and degraded optional parts."""

import json
from datetime import date

from sqlalchemy.exc import OperationalError

from parish_census.db.models import Family, Person
from parish_census.services import survey_read_service
from parish_census.utils.pagination import PaginationParams


def _family(db) -> Family:
    family = Family(
        family_code="FAM_1700000000000_legacy01",
        surname="Montoya",
        address="Vereda El Hato",
        phone="604-555",
        household_size=3,
        last_survey_date=date(2019, 6, 1),
    )
    db.add(family)
    db.flush()
    return family


def test_legacy_deceased_rows_are_decoded(db):
    family = _family(db)
    db.add_all(
        [
            Person(
                family_id=family.id,
                first_name="Carmen",
                first_surname="Montoya",
                identification="FALLECIDO_1560000000000_abc",
                sex_id=2,
                education=json.dumps(
                    {
                        "es_fallecido": True,
                        "fecha_aniversario": "2001-02-03",
                        "era_padre": False,
                        "era_madre": True,
                    }
                ),
            ),
            Person(
                family_id=family.id,
                first_name="Julio",
                first_surname="Montoya",
                identification="DECEASED_1560000000001_def_1",
                sex_id=1,
                education="{not json",
            ),
            Person(
                family_id=family.id,
                first_name="Camila",
                first_surname="Montoya",
                identification="1036000000",
                sex_id=2,
                education="Bachillerato",
            ),
        ]
    )
    db.commit()

    survey = survey_read_service.get_survey(db, family.id)

    assert [m.first_name for m in survey.members] == ["Camila"]
    assert survey.members[0].education == "Bachillerato"

    carmen, julio = survey.deceased_members
    assert carmen.deceased_source == "legacy_payload"
    assert carmen.anniversary_date == date(2001, 2, 3)
    assert carmen.was_mother is True
    assert carmen.was_father is False

    assert julio.deceased_source == "inferred_from_sex"
    assert julio.anniversary_date is None
    assert julio.was_father is True
    assert julio.was_mother is False

    summaries, total = survey_read_service.list_surveys(db, PaginationParams(page=1, per_page=10))
    assert total == 1
    assert summaries[0].living_members == 1
    assert summaries[0].deceased_members == 2


def test_first_class_columns_win_over_prefix(db):
    family = _family(db)
    person = Person(
        family_id=family.id,
        first_name="Rafael",
        first_surname="Montoya",
        identification="DECEASED_1700000000000_aaaaaaaaaaaa_1",
        is_deceased=True,
        anniversary_date=date(2020, 4, 9),
        was_father=True,
        education=json.dumps({"es_fallecido": True, "era_madre": True}),
    )
    db.add(person)
    db.commit()

    view = survey_read_service.decode_deceased(person, "Masculino")

    assert view.deceased_source == "columns"
    assert view.was_father is True
    assert view.was_mother is False
    assert view.anniversary_date == date(2020, 4, 9)


def test_payload_without_marker_falls_back_to_sex(db):
    family = _family(db)
    person = Person(
        family_id=family.id,
        first_name="Inés",
        first_surname="Montoya",
        identification="FALLECIDO_77",
        education=json.dumps({"era_padre": True}),
    )
    db.add(person)
    db.commit()

    assert survey_read_service.is_legacy_deceased(person) is True
    view = survey_read_service.decode_deceased(person, "Femenino")
    assert view.deceased_source == "inferred_from_sex"
    assert view.was_mother is True
    assert view.was_father is False


def test_failed_utility_lookup_degrades_to_none(db, monkeypatch):
    family = _family(db)
    db.commit()

    original = survey_read_service._linked_labels

    def flaky(db, link_model, link_column, catalog_model, family_id):
        if link_model.__tablename__ == "family_aqueduct_systems":
            raise OperationalError("SELECT ...", {}, Exception("no such table"))
        return original(db, link_model, link_column, catalog_model, family_id)

    monkeypatch.setattr(survey_read_service, "_linked_labels", flaky)

    survey = survey_read_service.get_survey(db, family.id)

    assert survey.utilities.aqueduct_system is None
    assert survey.utilities.wastewater_systems == []
    assert survey.utilities.waste_disposal.types == []
