"""Declarative field markers for resource models.

Three markers attach to Pydantic fields via ``Annotated``:

- ``APIParam``: field maps to a key of the AWS create/describe payload
- ``ForceNew``: changing the field requires destroying and recreating the resource
- ``Compare`` : field-level comparison strategy used by the engine

Helper functions introspect these markers at runtime to build request
payloads, extract read attributes, and drive plan classification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypeVar

from pydantic_core import PydanticUndefined

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")
CompareStrategy: TypeAlias = Literal["partial", "exact", "set", "json"]


# ── Marker dataclasses ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class APIParam:
    """Field maps to a top-level key of the AWS API payload.

    ``key`` uses the service's own casing, e.g. ``"Description"`` for KMS
    or ``"kmsKeyArn"`` for Amazon Managed Prometheus.
    """

    key: str


@dataclass(frozen=True, slots=True)
class ForceNew:
    """A change to this field plans a replace instead of an in-place update."""


@dataclass(frozen=True, slots=True)
class Compare:
    """How the engine should compare the field.

    - ``"partial"``: for dict values, only keys declared in desired are compared
    - ``"exact"``: strict equality comparison
    - ``"set"``: order-insensitive list comparison
    - ``"json"``: JSON documents compared semantically; ``None`` in desired
      means "accept whatever AWS reports"
    """

    strategy: CompareStrategy


# ── Shared introspection primitives ─────────────────────────────────


def _find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def _iter_marked_fields(
    model_or_cls: Any,
    marker_type: type[M],
) -> list[tuple[str, FieldInfo, M]]:
    """Return ``(field_name, field_info, marker)`` for every field carrying *marker_type*."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return [
        (name, fi, marker)
        for name, fi in cls.model_fields.items()
        if (marker := _find_marker(fi, marker_type)) is not None
    ]


def field_default(fi: FieldInfo) -> Any:
    """Model default for a field, or ``None`` for required fields."""
    if fi.default is not PydanticUndefined:
        return fi.default
    if fi.default_factory is not None:
        return fi.default_factory()  # type: ignore[call-arg]
    return None


# ── Public helpers ──────────────────────────────────────────────────


def collect_compare_strategies(resource_or_cls: Any) -> dict[str, CompareStrategy]:
    """Collect per-field compare strategies from ``Compare`` markers."""
    return {
        name: marker.strategy for name, _, marker in _iter_marked_fields(resource_or_cls, Compare)
    }


def collect_force_new(resource_or_cls: Any) -> frozenset[str]:
    """Names of fields whose change requires replacement."""
    return frozenset(name for name, _, _ in _iter_marked_fields(resource_or_cls, ForceNew))


def extract_api_attrs(resource_cls: type, raw: dict[str, Any]) -> dict[str, Any]:
    """Extract model attrs from an AWS describe payload via ``APIParam`` markers.

    Keys missing from *raw* fall back to the model default.
    """
    return {
        name: raw.get(marker.key, field_default(fi))
        for name, fi, marker in _iter_marked_fields(resource_cls, APIParam)
    }


def build_api_params(resource: Any, *, only: set[str] | None = None) -> dict[str, Any]:
    """Build an AWS request payload from ``APIParam`` fields.

    ``None`` values are omitted; *only* restricts the payload to the given
    field names.
    """
    return {
        marker.key: getattr(resource, name)
        for name, _, marker in _iter_marked_fields(resource, APIParam)
        if getattr(resource, name) is not None and (only is None or name in only)
    }
