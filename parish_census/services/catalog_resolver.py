"""Catalog resolver: human-entered interview labels -> catalog ids.

Every lookup is total. Unknown, absent or wrongly-typed input resolves to the
documented default (usually None) and never raises: a doorstep interview is
worth more than the fidelity of one categorical field.

Keys are matched accent- and case-insensitively, so "Unión Libre",
"union libre" and "UNION LIBRE" resolve alike.
"""

from typing import Any

from parish_census.utils.normalization import normalize_search_text


# Default catalog ids (match the seeded catalog rows)
DEFAULT_AQUEDUCT_SYSTEM_ID = 1  # Acueducto público
DEFAULT_HOUSING_TYPE_ID = 1  # Casa
DEFAULT_HOUSING_TYPE_LABEL = "Casa"


SEX_IDS: dict[str, int] = {
    "hombre": 1,
    "masculino": 1,
    "m": 1,
    "male": 1,
    "mujer": 2,
    "femenino": 2,
    "f": 2,
    "female": 2,
    "o": 3,
    "otro": 3,
    "other": 3,
}

IDENTIFICATION_TYPE_IDS: dict[str, int] = {
    "cc": 1,
    "cedula de ciudadania": 1,
    "ti": 2,
    "tarjeta de identidad": 2,
    "rc": 3,
    "registro civil": 3,
    "ce": 4,
    "cedula de extranjeria": 4,
    "pp": 5,
    "pasaporte": 5,
}

CIVIL_STATUS_IDS: dict[str, int] = {
    "soltero": 1,
    "soltera": 1,
    "soltero(a)": 1,
    "casado": 2,
    "casada": 2,
    "casado(a)": 2,
    "divorciado": 3,
    "divorciada": 3,
    "divorciado(a)": 3,
    "viudo": 4,
    "viuda": 4,
    "viudo(a)": 4,
    "union libre": 5,
}

# Interview checkbox name -> waste_disposal_types.id
WASTE_DISPOSAL_FLAG_IDS: dict[str, int] = {
    "collector": 1,
    "recolector": 1,
    "burned": 2,
    "quemada": 2,
    "buried": 3,
    "enterrada": 3,
    "recycled": 4,
    "recicla": 4,
    "open_air": 6,
    "aire_libre": 6,
    "not_applicable": 7,
    "no_aplica": 7,
}

# Canonical flag name reported back by the survey reader
WASTE_DISPOSAL_FLAG_NAMES: dict[int, str] = {
    1: "collector",
    2: "burned",
    3: "buried",
    4: "recycled",
    6: "open_air",
    7: "not_applicable",
}

WASTEWATER_LABEL_IDS: dict[str, int] = {
    "alcantarillado": 1,
    "sewer": 1,
    "pozo septico": 2,
    "septic tank": 2,
    "letrina": 3,
    "latrine": 3,
    "campo abierto": 4,
    "open field": 4,
}

WASTEWATER_FLAG_IDS: dict[str, int] = {
    "septic_tank": 2,
    "latrine": 3,
    "open_field": 4,
}

AQUEDUCT_SYSTEM_IDS: dict[str, int] = {
    "acueducto publico": 1,
    "acueducto veredal": 2,
    "pozo": 3,
    "nacimiento": 4,
    "rio": 4,
    "carrotanque": 5,
}

HOUSING_TYPE_IDS: dict[str, int] = {
    "casa": 1,
    "apartamento": 2,
    "finca": 3,
    "rancho": 4,
    "habitacion": 5,
    "inquilinato": 5,
    "otro": 6,
}


def _lookup(table: dict[str, int], value: Any) -> int | None:
    if not isinstance(value, str):
        return None
    key = normalize_search_text(value)
    if key is None:
        return None
    return table.get(key)


def _ref_parts(ref: Any) -> tuple[Any, Any]:
    """Extract (id, name) from a CatalogRef-like object, a dict, or a bare label."""
    if ref is None:
        return None, None
    if isinstance(ref, str):
        return None, ref
    if isinstance(ref, dict):
        return ref.get("id"), ref.get("name")
    return getattr(ref, "id", None), getattr(ref, "name", None)


def _explicit_id(raw_id: Any) -> int | None:
    # bool is an int subclass; never accept it as an id
    if isinstance(raw_id, bool):
        return None
    if isinstance(raw_id, int):
        return raw_id if raw_id > 0 else None
    if isinstance(raw_id, str) and raw_id.strip().isdigit():
        parsed = int(raw_id.strip())
        return parsed if parsed > 0 else None
    return None


def resolve_sex(value: Any) -> int | None:
    """Sex label -> sexes.id; unknown -> None."""
    return _lookup(SEX_IDS, value)


def resolve_identification_type(value: Any) -> int | None:
    """Document code ("CC", "TI", ...) -> identification_types.id; unknown -> None."""
    return _lookup(IDENTIFICATION_TYPE_IDS, value)


def resolve_civil_status(value: Any) -> int | None:
    """Civil status label -> civil_statuses.id; unknown -> None."""
    return _lookup(CIVIL_STATUS_IDS, value)


def resolve_waste_disposal_flags(flags: Any) -> list[int]:
    """
    Checked waste-disposal boxes -> distinct waste_disposal_types ids.

    Only true-valued flags count; unknown flag names are ignored.
    """
    if not isinstance(flags, dict):
        return []
    ids: list[int] = []
    for name, checked in flags.items():
        if checked is not True:
            continue
        catalog_id = WASTE_DISPOSAL_FLAG_IDS.get(name) if isinstance(name, str) else None
        if catalog_id is not None and catalog_id not in ids:
            ids.append(catalog_id)
    return ids


def resolve_wastewater(label: Any, flags: Any) -> list[int]:
    """Free-text wastewater label plus checked flags -> distinct wastewater_systems ids."""
    ids: list[int] = []
    label_id = _lookup(WASTEWATER_LABEL_IDS, label)
    if label_id is not None:
        ids.append(label_id)
    if isinstance(flags, dict):
        for name, catalog_id in WASTEWATER_FLAG_IDS.items():
            if flags.get(name) is True and catalog_id not in ids:
                ids.append(catalog_id)
    return ids


def resolve_aqueduct_system(ref: Any) -> int | None:
    """
    Aqueduct reference -> aqueduct_systems.id.

    Absent section -> None. Present but unrecognized -> public aqueduct.
    """
    if ref is None:
        return None
    raw_id, name = _ref_parts(ref)
    explicit = _explicit_id(raw_id)
    if explicit is not None:
        return explicit
    return _lookup(AQUEDUCT_SYSTEM_IDS, name) or DEFAULT_AQUEDUCT_SYSTEM_ID


def resolve_housing_type(ref: Any) -> int:
    """Housing type reference -> housing_types.id; anything unrecognized -> Casa."""
    raw_id, name = _ref_parts(ref)
    explicit = _explicit_id(raw_id)
    if explicit is not None:
        return explicit
    return _lookup(HOUSING_TYPE_IDS, name) or DEFAULT_HOUSING_TYPE_ID


def housing_type_label(ref: Any) -> str:
    """Label stored on the family row; falls back to Casa."""
    _, name = _ref_parts(ref)
    if isinstance(name, str) and name.strip():
        return name.strip()
    return DEFAULT_HOUSING_TYPE_LABEL
