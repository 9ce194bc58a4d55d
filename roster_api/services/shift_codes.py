# roster_api/services/shift_codes.py
"""Closed vocabulary of shift codes and their display labels."""
from __future__ import annotations

SHIFT_DESCRIPTIONS: dict[str, str] = {
    "PE": "Patrulla Escolar",
    "A": "Administrativo",
    "AE": "Administrativo Extra",
    "LM": "Licencia Médica",
    "S": "Día Sindical",
    "SE": "Día Sindical Extra",
    "M": "Mañana",
    "T": "Tarde",
    "N": "Noche",
    "ME": "Mañana Extra",
    "TE": "Tarde Extra",
    "NE": "Noche Extra",
    "F": "Franco",
    "FE": "Franco Extra",
    "L": "Libre",
    "LE": "Libre Extra",
    "1": "Primer Turno",
    "2": "Segundo Turno",
    "3": "Tercer Turno",
    "1E": "Primer Turno Extra",
    "2E": "Segundo Turno Extra",
    "3E": "Tercer Turno Extra",
}

NO_SHIFT = ""
NO_SHIFT_LABEL = "Sin Turno"
UNASSIGNED_LABEL = "Sin Asignar"
UNKNOWN_LABEL = "Desconocido"

DEFAULT_NON_NOTIFIABLE = (UNASSIGNED_LABEL, NO_SHIFT_LABEL, UNKNOWN_LABEL)


def normalize_code(value) -> str:
    """Upper-case and strip; None and blanks become the empty (no shift) code."""
    if value is None:
        return NO_SHIFT
    return str(value).strip().upper()


def is_valid_code(value) -> bool:
    code = normalize_code(value)
    return code == NO_SHIFT or code in SHIFT_DESCRIPTIONS


def describe(value) -> str:
    code = normalize_code(value)
    if code == NO_SHIFT:
        return NO_SHIFT_LABEL
    return SHIFT_DESCRIPTIONS.get(code, UNKNOWN_LABEL)
