"""Cross-resource reference substitution.

String attributes may embed ``${<resource_type>.<name>.<attribute>}``
(e.g. ``${aws_kms_key.primary.arn}``). References are resolved from the
stored attributes of the referenced resource. During planning unknown
values stay as-is ("known after apply"); during apply they must resolve.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aws_provisioner.engine.errors import UnresolvedReferenceError
from aws_provisioner.resources.base import REFERENCE_PATTERN

if TYPE_CHECKING:
    from aws_provisioner.core.state import State


def _lookup(state: State, address: str, attr: str) -> Any:
    inst = state.resources.get(address)
    if inst is None:
        return None
    return inst.attributes.get(attr)


def resolve_references(
    value: Any, state: State, *, strict: bool = False, owner: str = "<unknown>"
) -> Any:
    """Replace ``${…}`` references in string values, recursively.

    A string that consists of a single reference takes the referenced value
    verbatim (which may be a non-string). With *strict*, an unresolvable
    reference raises ``UnresolvedReferenceError``.
    """
    if isinstance(value, str):
        whole = REFERENCE_PATTERN.fullmatch(value)
        if whole is not None:
            resolved = _lookup(state, whole.group(1), whole.group(2))
            if resolved is None:
                if strict:
                    raise UnresolvedReferenceError(owner, value)
                return value
            return resolved

        def _sub(match: Any) -> str:
            resolved = _lookup(state, match.group(1), match.group(2))
            if resolved is None:
                if strict:
                    raise UnresolvedReferenceError(owner, match.group(0))
                return match.group(0)
            return str(resolved)

        return REFERENCE_PATTERN.sub(_sub, value)
    if isinstance(value, dict):
        return {
            k: resolve_references(v, state, strict=strict, owner=owner) for k, v in value.items()
        }
    if isinstance(value, list):
        return [resolve_references(v, state, strict=strict, owner=owner) for v in value]
    return value
