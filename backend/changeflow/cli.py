"""Management CLI for permission diagnostics.

Usage:
    python -m changeflow.cli capabilities          # List the capability vocabulary
    python -m changeflow.cli resolve FILE.json     # Resolve role/groups/override from a JSON file

FILE.json:
    {
      "role": {"canSeeUsers": true, ...},
      "groups": [{"id": "g1", "permissions": {...}, "is_active": true}],
      "override": null
    }
"""

import json
import sys
from pathlib import Path
from typing import Any

from changeflow.auth.capabilities import Capability
from changeflow.auth.resolver import GroupGrant, resolve_permissions
from changeflow.middleware.exceptions import ChangeflowException


def list_capabilities():
    for capability in Capability:
        print(f"  {capability.value}")
    print(f"\n{len(Capability)} capabilities")


def load_document(path: str) -> tuple[Any, list[GroupGrant], Any]:
    """Read FILE.json into (role, groups, override)."""
    document = json.loads(Path(path).read_text())
    groups = [
        GroupGrant(
            group_id=str(g["id"]),
            permissions=g.get("permissions"),
            is_active=g.get("is_active", True),
        )
        for g in document.get("groups", [])
    ]
    return document.get("role"), groups, document.get("override")


def resolve_file(path: str) -> int:
    try:
        role, groups, override = load_document(path)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        print(f"  FAILED: INVALID_INPUT: {path}: {e!r}", file=sys.stderr)
        return 1

    try:
        resolution = resolve_permissions(role, groups, override)
    except ChangeflowException as e:
        print(f"  FAILED: {e.error_code}: {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(
        {
            "granted": resolution.resolved.granted(),
            "provenance": {c.value: s for c, s in resolution.provenance.items()},
            "issues": [{"kind": e.kind.value, "source": e.source} for e in resolution.errors],
        },
        indent=2,
    ))
    return 0


def main(argv: list[str]) -> int:
    cmd = argv[1] if len(argv) > 1 else ""
    if cmd == "capabilities":
        list_capabilities()
        return 0
    if cmd == "resolve" and len(argv) > 2:
        return resolve_file(argv[2])
    print("Usage: python -m changeflow.cli [capabilities|resolve FILE.json]")
    return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv))
