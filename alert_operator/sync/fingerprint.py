"""
Stable 32-bit fingerprints of a condition's semantic fields.

Fields a condition inherits from its policy (credentials, region, account
and target policy id) are blanked before hashing, so a child object and the
policy entry that produced it hash the same.

Known limitations:
- Collisions are treated as duplicates.
- Term lists are hashed in order; the same terms reordered give a different
  fingerprint.
"""

import json
from typing import Dict, List, Tuple

from alert_operator.models.condition import GenericConditionSpec, PolicyCondition

FNV32_OFFSET_BASIS = 0x811C9DC5
FNV32_PRIME = 0x01000193


def fnv1a_32(data: bytes) -> int:
    """32-bit FNV-1a."""
    value = FNV32_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV32_PRIME) & 0xFFFFFFFF
    return value


def strip_inherited(spec: GenericConditionSpec) -> GenericConditionSpec:
    """Deep copy of `spec` with every inherited field reset to its default."""
    defaults = {
        name: type(spec).model_fields[name].get_default(call_default_factory=True)
        for name in spec.INHERITED_FIELDS
    }
    return spec.model_copy(update=defaults, deep=True)


def canonical_bytes(spec: GenericConditionSpec) -> bytes:
    stripped = strip_inherited(spec)
    return json.dumps(
        stripped.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
    ).encode()


def fingerprint(spec: GenericConditionSpec) -> int:
    """Fingerprint of a condition spec, ignoring inherited fields."""
    return fnv1a_32(canonical_bytes(spec))


def find_duplicate_conditions(
    conditions: List[PolicyCondition],
) -> List[Tuple[int, int]]:
    """
    Index pairs (first, duplicate) of conditions whose fingerprints collide.

    Run before a policy is accepted; the synchronizer itself does not
    deduplicate.
    """
    seen: Dict[int, int] = {}
    duplicates = []
    for index, condition in enumerate(conditions):
        value = condition.fingerprint()
        if value in seen:
            duplicates.append((seen[value], index))
        else:
            seen[value] = index
    return duplicates
