"""Render retention policies as Elasticsearch ILM policy documents."""

from typing import Any

from index_lifecycle.retention.models import RetentionPolicy
from index_lifecycle.retention.units import format_duration, format_size

MANAGED_BY = "index-lifecycle-engine"


def policy_name(policy: RetentionPolicy, prefix: str = "") -> str:
    """Name under which a stream's ILM policy is stored."""
    return f"{prefix}{policy.stream_name}-policy"


def build_policy_document(policy: RetentionPolicy, include_actions: bool = True) -> dict[str, Any]:
    """Build the ``PUT _ilm/policy/<name>`` request body for a policy.

    The hot phase rolls over on age or size; the delete phase removes the
    index once it has reached ``delete_min_age``.

    Without ``include_actions`` the phases keep their timings but carry no
    rollover or delete action, and ``_meta.managed_by`` names this engine.
    That is the form installed while the engine itself applies rollovers
    and deletions, so Elasticsearch never acts on the same indices.

    Args:
        policy: Retention policy
        include_actions: Whether ILM should perform rollover and deletion

    Returns:
        ILM policy body
    """
    if include_actions:
        hot_actions: dict[str, Any] = {
            "rollover": {
                "max_age": format_duration(policy.rollover_max_age),
                "max_size": format_size(policy.rollover_max_size),
            },
        }
        delete_actions: dict[str, Any] = {"delete": {}}
    else:
        hot_actions = {}
        delete_actions = {}

    document: dict[str, Any] = {
        "policy": {
            "phases": {
                "hot": {"min_age": "0ms", "actions": hot_actions},
                "delete": {
                    "min_age": format_duration(policy.delete_min_age),
                    "actions": delete_actions,
                },
            },
        },
    }

    meta: dict[str, Any] = {}
    if policy.description:
        meta["description"] = policy.description
    if not include_actions:
        meta["managed_by"] = MANAGED_BY
        meta["rollover_max_age"] = format_duration(policy.rollover_max_age)
        meta["rollover_max_size"] = format_size(policy.rollover_max_size)
    if meta:
        document["policy"]["_meta"] = meta
    return document
