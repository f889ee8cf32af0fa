"""Shared YAML helpers for scenarios and CLI output."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class PlainDumper(yaml.SafeDumper):
    pass


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=None)


PlainDumper.add_representer(str, _str_representer)


def dump_yaml(data: Any) -> str:
    return yaml.dump(data, Dumper=PlainDumper, sort_keys=False, width=4096)


def load_yaml(path: Path) -> Any:
    return yaml.safe_load(Path(path).read_text())
