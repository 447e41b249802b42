"""CVSS v3 vector decoding and scoring."""

from __future__ import annotations

import math

_PREFIXES = ("CVSS:3.0", "CVSS:3.1")

_ATTACK_VECTOR = {"N": 0.85, "A": 0.62, "L": 0.55, "P": 0.2}
_ATTACK_COMPLEXITY = {"L": 0.77, "H": 0.44}
# Privileges required: (scope unchanged, scope changed)
_PRIVILEGES_REQUIRED = {"N": (0.85, 0.85), "L": (0.62, 0.68), "H": (0.27, 0.5)}
_USER_INTERACTION = {"N": 0.85, "R": 0.62}
_SCOPE = {"U", "C"}
_IMPACT = {"H": 0.56, "L": 0.22, "N": 0.0}

_BASE_VALUES = {
    "AV": set(_ATTACK_VECTOR),
    "AC": set(_ATTACK_COMPLEXITY),
    "PR": set(_PRIVILEGES_REQUIRED),
    "UI": set(_USER_INTERACTION),
    "S": _SCOPE,
    "C": set(_IMPACT),
    "I": set(_IMPACT),
    "A": set(_IMPACT),
}

_TEMPORAL = {
    "E": {"X": 1.0, "H": 1.0, "F": 0.97, "P": 0.94, "U": 0.91},
    "RL": {"X": 1.0, "U": 1.0, "W": 0.97, "T": 0.96, "O": 0.95},
    "RC": {"X": 1.0, "C": 1.0, "R": 0.96, "U": 0.92},
}


class CVSSError(ValueError):
    """Raised for a CVSS v3 vector that cannot be decoded."""


def _roundup_v31(value: float) -> float:
    scaled = round(value * 100000)
    if scaled % 10000 == 0:
        return scaled / 100000.0
    return (math.floor(scaled / 10000) + 1) / 10.0


def _roundup_v30(value: float) -> float:
    return math.ceil(value * 10) / 10.0


def _decode(vector: str) -> tuple[str, dict[str, str]]:
    prefix, sep, body = vector.partition("/")
    if prefix not in _PREFIXES or not sep or not body:
        raise CVSSError(f"invalid CVSS v3 vector: {vector!r}")
    metrics: dict[str, str] = {}
    for part in body.split("/"):
        name, sep, value = part.partition(":")
        if not sep or not name or not value:
            raise CVSSError(f"invalid metric {part!r} in {vector!r}")
        if name in metrics:
            raise CVSSError(f"duplicate metric {name} in {vector!r}")
        allowed = _BASE_VALUES.get(name)
        if allowed is None:
            temporal = _TEMPORAL.get(name)
            if temporal is None:
                raise CVSSError(f"unsupported metric {name} in {vector!r}")
            allowed = set(temporal)
        if value not in allowed:
            raise CVSSError(f"invalid value {value!r} for metric {name}")
        metrics[name] = value
    missing = [name for name in _BASE_VALUES if name not in metrics]
    if missing:
        raise CVSSError(f"missing base metrics {', '.join(missing)} in {vector!r}")
    return prefix, metrics


def cvss3_score(vector: str) -> float:
    """Return the temporal score of a CVSS v3 vector (the base score if no temporal metrics)."""
    prefix, metrics = _decode(vector)
    roundup = _roundup_v31 if prefix == "CVSS:3.1" else _roundup_v30
    changed = metrics["S"] == "C"

    iss = 1 - (
        (1 - _IMPACT[metrics["C"]]) * (1 - _IMPACT[metrics["I"]]) * (1 - _IMPACT[metrics["A"]])
    )
    if changed:
        impact = 7.52 * (iss - 0.029) - 3.25 * (iss - 0.02) ** 15
    else:
        impact = 6.42 * iss
    exploitability = (
        8.22
        * _ATTACK_VECTOR[metrics["AV"]]
        * _ATTACK_COMPLEXITY[metrics["AC"]]
        * _PRIVILEGES_REQUIRED[metrics["PR"]][1 if changed else 0]
        * _USER_INTERACTION[metrics["UI"]]
    )

    if impact <= 0:
        base = 0.0
    elif changed:
        base = roundup(min(1.08 * (impact + exploitability), 10.0))
    else:
        base = roundup(min(impact + exploitability, 10.0))

    factor = 1.0
    for name, weights in _TEMPORAL.items():
        factor *= weights[metrics.get(name, "X")]
    return roundup(base * factor)