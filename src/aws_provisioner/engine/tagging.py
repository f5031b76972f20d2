"""Tag map helpers shared by all taggable resources.

Tags are plain ``dict[str, str]`` maps. The provider's ``default_tags``
are merged underneath each resource's own tags (the resource wins), and
the merged map (``tags_all``) is what actually lives in AWS. Keys with the
reserved ``aws:`` prefix belong to AWS and are never touched.

Updates are applied remove-first: stale keys are untagged in one call,
then new and changed keys are tagged in one call. With identical desired
and remote maps no call is issued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from aws_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

SYSTEM_TAG_PREFIX = "aws:"


@dataclass(frozen=True)
class TagDiff:
    to_add: dict[str, str] = field(default_factory=dict)
    to_update: dict[str, str] = field(default_factory=dict)
    to_remove: list[str] = field(default_factory=list)

    @property
    def upserts(self) -> dict[str, str]:
        return {**self.to_add, **self.to_update}

    def __bool__(self) -> bool:
        return bool(self.to_add or self.to_update or self.to_remove)


def diff_tags(desired: Mapping[str, str], remote: Mapping[str, str]) -> TagDiff:
    """Split the difference between two tag maps into add/update/remove sets."""
    return TagDiff(
        to_add={k: v for k, v in desired.items() if k not in remote},
        to_update={k: v for k, v in desired.items() if k in remote and remote[k] != v},
        to_remove=sorted(k for k in remote if k not in desired),
    )


def ignore_system_tags(tags: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in tags.items() if not k.lower().startswith(SYSTEM_TAG_PREFIX)}


def merge_default_tags(default_tags: Mapping[str, str], tags: Mapping[str, str]) -> dict[str, str]:
    """Full tag map for a resource: defaults overlaid by the resource's own tags."""
    return {**default_tags, **tags}


def remove_default_tags(
    tags_all: Mapping[str, str], default_tags: Mapping[str, str]
) -> dict[str, str]:
    """Recover resource-level tags from a full map.

    A key is attributed to the defaults only when both key and value match.
    """
    return {k: v for k, v in tags_all.items() if default_tags.get(k) != v}


def update_tags(
    old: Mapping[str, str],
    new: Mapping[str, str],
    *,
    tag: Callable[[dict[str, str]], Any],
    untag: Callable[[list[str]], Any],
) -> TagDiff:
    """Converge remote tags from *old* to *new* and return what was changed."""
    diff = diff_tags(ignore_system_tags(new), ignore_system_tags(old))
    if diff.to_remove:
        logger.debug("Removing tags: %s", diff.to_remove)
        untag(diff.to_remove)
    if diff.upserts:
        logger.debug("Setting tags: %s", sorted(diff.upserts))
        tag(diff.upserts)
    return diff


def tag_attributes(ctx: EngineContext, remote_tags: Mapping[str, str]) -> dict[str, Any]:
    """``tags``/``tags_all`` attribute pair for a remote tag map."""
    tags_all = ignore_system_tags(remote_tags)
    return {
        "tags": remove_default_tags(tags_all, ctx.provider.default_tags),
        "tags_all": tags_all,
    }


def desired_tags_all(ctx: EngineContext, tags: Mapping[str, str]) -> dict[str, str]:
    return merge_default_tags(ctx.provider.default_tags, tags)


# ── Wire formats ────────────────────────────────────────────────────


def tags_to_list(
    tags: Mapping[str, str], *, key_field: str = "Key", value_field: str = "Value"
) -> list[dict[str, str]]:
    """``{"k": "v"}`` → ``[{"Key": "k", "Value": "v"}]`` (field names vary per service)."""
    return [{key_field: k, value_field: v} for k, v in sorted(tags.items())]


def tags_from_list(
    items: Iterable[Mapping[str, str]] | None,
    *,
    key_field: str = "Key",
    value_field: str = "Value",
) -> dict[str, str]:
    return {item[key_field]: item.get(value_field, "") for item in items or []}
