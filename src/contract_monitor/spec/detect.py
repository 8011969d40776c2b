"""Auto-detect the shape of a contract document."""

import json
from pathlib import Path

import yaml

from contract_monitor.errors import SpecInvalid


def read_document(file_path: Path) -> dict:
    """Read a YAML or JSON contract document into a mapping."""
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecInvalid(f"cannot read {file_path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        # Some JSON (e.g. tabs in strings) is not valid YAML
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, ValueError) as e:
            raise SpecInvalid(f"{file_path} is neither YAML nor JSON: {e}") from e

    if not isinstance(data, dict):
        raise SpecInvalid(f"{file_path} does not contain a mapping")
    return data


def detect_format(doc: dict) -> str:
    """Detect the shape of a parsed contract document.

    Returns: 'openapi' or 'native'.
    """
    if "openapi" in doc or "swagger" in doc or "components" in doc:
        return "openapi"
    return "native"
