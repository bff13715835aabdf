"""
Source Structure Parser for Swift, backed by SourceKitten.

`sourcekitten structure --file <path>` prints the declaration tree of a file
as JSON. The output is validated against STRUCTURE_SCHEMA before use, and the
tree is flattened into DeclarationNodes:

- class/struct/enum/protocol declarations with at least one supertype
- typealiases, as alias nodes whose only supertype is the aliased type
- types nested in other types or in `extension X` get dotted names (X.Inner)
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import jsonschema

from .declarations import DeclarationNode
from .errors import CommandError, MalformedOutputError, ParseError
from .shell import run_command

logger = logging.getLogger(__name__)

TYPE_KINDS = frozenset(
    {
        "source.lang.swift.decl.class",
        "source.lang.swift.decl.struct",
        "source.lang.swift.decl.enum",
        "source.lang.swift.decl.protocol",
    }
)
TYPEALIAS_KIND = "source.lang.swift.decl.typealias"
EXTENSION_KIND_PREFIX = "source.lang.swift.decl.extension"

STRUCTURE_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["key.substructure"],
    "properties": {
        "key.substructure": {"type": "array", "items": {"$ref": "#/$defs/item"}},
    },
    "$defs": {
        "item": {
            "type": "object",
            "properties": {
                "key.kind": {"type": "string"},
                "key.name": {"type": "string"},
                "key.offset": {"type": "integer", "minimum": 0},
                "key.length": {"type": "integer", "minimum": 0},
                "key.inheritedtypes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"key.name": {"type": "string"}},
                    },
                },
                "key.substructure": {"type": "array", "items": {"$ref": "#/$defs/item"}},
            },
        }
    },
}

STRUCTURE_VALIDATOR = jsonschema.Draft202012Validator(STRUCTURE_SCHEMA)


def decode_structure(output: str, file_path: str = "") -> Dict[str, Any]:
    """
    Parse and validate sourcekitten JSON output.

    Raises:
        MalformedOutputError: output is not JSON or does not match the schema
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise MalformedOutputError("sourcekitten", f"invalid JSON for {file_path}: {e}", output)

    try:
        STRUCTURE_VALIDATOR.validate(data)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise MalformedOutputError(
            "sourcekitten", f"{e.message} at {location} ({file_path})"
        )
    return data


def extract_alias_target(item: Dict[str, Any], contents: bytes) -> Optional[str]:
    """
    Aliased type text of a typealias declaration, taken from its byte range.

    `typealias Theme = Stylable` -> "Stylable". None when the range is
    missing, out of bounds, or has nothing after '='.
    """
    offset = item.get("key.offset")
    length = item.get("key.length")
    if offset is None or length is None:
        return None

    start, end = offset, offset + length
    if start < 0 or end > len(contents):
        return None

    declaration = contents[start:end].decode("utf-8", errors="replace")
    _, equals, target = declaration.partition("=")
    if not equals:
        return None
    target = target.strip()
    return target or None


def flatten_structure(
    substructure: List[Dict[str, Any]],
    file_path: str,
    contents: bytes = b"",
    parent_path: Optional[str] = None,
) -> List[DeclarationNode]:
    """Walk a sourcekitten substructure tree and collect declarations."""
    nodes = []

    for item in substructure:
        kind = item.get("key.kind")
        name = item.get("key.name")
        children = item.get("key.substructure") or []

        if kind in TYPE_KINDS and name:
            full_name = f"{parent_path}.{name}" if parent_path else name
            inherited = [
                entry["key.name"]
                for entry in item.get("key.inheritedtypes") or []
                if entry.get("key.name")
            ]
            if inherited:
                nodes.append(
                    DeclarationNode(
                        name=name,
                        full_name=full_name,
                        file_path=file_path,
                        inherited_types=tuple(inherited),
                    )
                )
            nodes.extend(flatten_structure(children, file_path, contents, full_name))

        elif kind == TYPEALIAS_KIND and name:
            target = extract_alias_target(item, contents)
            if target:
                full_name = f"{parent_path}.{name}" if parent_path else name
                nodes.append(
                    DeclarationNode(
                        name=name,
                        full_name=full_name,
                        file_path=file_path,
                        inherited_types=(target,),
                        is_alias=True,
                    )
                )

        elif kind and kind.startswith(EXTENSION_KIND_PREFIX) and name:
            extended = f"{parent_path}.{name}" if parent_path else name
            nodes.extend(flatten_structure(children, file_path, contents, extended))

        else:
            nodes.extend(flatten_structure(children, file_path, contents, parent_path))

    return nodes


class SwiftParser:
    """Parses one Swift file at a time through the sourcekitten CLI."""

    def __init__(self, executable: str = "sourcekitten"):
        self.executable = executable

    def parse(self, file_path: str) -> List[DeclarationNode]:
        with open(file_path, "rb") as f:
            contents = f.read()
        if not contents.strip():
            return []

        try:
            output = run_command([self.executable, "structure", "--file", file_path])
        except CommandError as e:
            raise ParseError(f"Failed to parse {os.path.basename(file_path)}: {e}")

        structure = decode_structure(output, file_path)
        return flatten_structure(structure["key.substructure"], file_path, contents)
