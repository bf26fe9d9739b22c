"""Serialisation helpers shared by the renderers."""
from __future__ import annotations

import json
from collections.abc import Mapping

import yaml


def dump_yaml(payload: Mapping[str, object]) -> str:
    """Return block-style YAML preserving insertion order."""
    return yaml.safe_dump(
        dict(payload),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=256,
    )


def dump_json(payload: Mapping[str, object]) -> bytes:
    """Return indented JSON preserving insertion order."""
    text = json.dumps(payload, indent=2, sort_keys=False, ensure_ascii=False)
    return (text + "\n").encode("utf-8")
