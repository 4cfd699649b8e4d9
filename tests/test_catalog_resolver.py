"""Label -> catalog id lookups never raise."""

import pytest

from parish_census.schemas.survey import CatalogRef
from parish_census.services import catalog_resolver


@pytest.mark.parametrize(
    "label,expected",
    [
        ("Masculino", 1),
        ("hombre", 1),
        ("FEMENINO", 2),
        ("Mujer", 2),
        ("otro", 3),
        ("  f ", 2),
        ("desconocido", None),
        ("", None),
        (None, None),
        (42, None),
        ({"name": "Masculino"}, None),
    ],
)
def test_resolve_sex(label, expected):
    assert catalog_resolver.resolve_sex(label) == expected


def test_identification_type_codes_are_case_insensitive():
    assert catalog_resolver.resolve_identification_type("CC") == 1
    assert catalog_resolver.resolve_identification_type("ti") == 2
    assert catalog_resolver.resolve_identification_type("Cédula de extranjería") == 4
    assert catalog_resolver.resolve_identification_type("NIT") is None
    assert catalog_resolver.resolve_identification_type(["CC"]) is None


def test_civil_status_ignores_accents_and_case():
    assert catalog_resolver.resolve_civil_status("Unión Libre") == 5
    assert catalog_resolver.resolve_civil_status("union libre") == 5
    assert catalog_resolver.resolve_civil_status("UNION LIBRE") == 5
    assert catalog_resolver.resolve_civil_status("Viuda") == 4
    assert catalog_resolver.resolve_civil_status("comprometido") is None


def test_waste_disposal_only_counts_true_flags():
    ids = catalog_resolver.resolve_waste_disposal_flags(
        {
            "collector": True,
            "burned": False,
            "recicla": True,
            "recycled": True,
            "open_air": "yes",
            "teleport": True,
        }
    )
    assert ids == [1, 4]


@pytest.mark.parametrize("flags", [None, [], "collector", 7])
def test_waste_disposal_non_mapping_is_empty(flags):
    assert catalog_resolver.resolve_waste_disposal_flags(flags) == []


def test_wastewater_combines_label_and_flags_without_duplicates():
    ids = catalog_resolver.resolve_wastewater(
        "Pozo séptico", {"septic_tank": True, "latrine": True, "open_field": False}
    )
    assert ids == [2, 3]
    assert catalog_resolver.resolve_wastewater(None, None) == []
    assert catalog_resolver.resolve_wastewater("río", {"open_field": True}) == [4]


def test_aqueduct_absent_vs_unrecognized():
    assert catalog_resolver.resolve_aqueduct_system(None) is None
    assert catalog_resolver.resolve_aqueduct_system(CatalogRef(name="Pozo")) == 3
    assert catalog_resolver.resolve_aqueduct_system(CatalogRef(name="Lluvia")) == 1
    assert catalog_resolver.resolve_aqueduct_system(CatalogRef(id=5)) == 5
    assert catalog_resolver.resolve_aqueduct_system({"id": "2"}) == 2


def test_housing_type_defaults_to_casa():
    assert catalog_resolver.resolve_housing_type(None) == 1
    assert catalog_resolver.resolve_housing_type("Apartamento") == 2
    assert catalog_resolver.resolve_housing_type({"id": True, "name": "Finca"}) == 3
    assert catalog_resolver.resolve_housing_type(CatalogRef(name="Castillo")) == 1
    assert catalog_resolver.housing_type_label(None) == "Casa"
    assert catalog_resolver.housing_type_label(CatalogRef(name=" Rancho ")) == "Rancho"
