"""Result decoder — runtime CLI text to typed values.

Three raw shapes come back from the runtime CLI:

- newline-delimited identifiers (``ps --quiet``),
- one JSON record per line (``ps``/``images`` with ``--format {{json .}}``),
- a single JSON document (``inspect``, which wraps it in a one-element array).

Each shape function returns ``Ok(value)`` or ``DecodeFailed(raw, reason)``;
record schemas per verb are explicit and a missing key is a failure, never a
default. Empty output is an empty collection for list-style shapes.
A bad line fails the whole call (see ``collect_results``).

Example::

    records = decode_json_lines(outcome.stdout).unwrap()
    containers = decode_containers(outcome.stdout).unwrap()

Tags:
    decoding, json, parsing, result-pattern
"""

from __future__ import annotations

import json
import re
from typing import Any

from harbor.core.result import DecodeFailed, DecodeResult, Ok, collect_results
from harbor.models import Container, ContainerStatus, Image

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:@/-]*$")
_NONE = "<none>"


# ---------------------------------------------------------------------------
# Raw shapes
# ---------------------------------------------------------------------------


def decode_identifiers(raw: str) -> DecodeResult[list[str]]:
    """Decode newline-delimited identifiers. Blank output is an empty list."""
    return collect_results(_identifier(line.strip()) for line in raw.splitlines() if line.strip())


def _identifier(line: str) -> DecodeResult[str]:
    if _IDENTIFIER_RE.match(line):
        return Ok(line)
    return DecodeFailed(line, reason="not an identifier", expected="identifier")


def decode_json_document(raw: str) -> DecodeResult[dict[str, Any]]:
    """Decode exactly one JSON object (a bare object or a one-element array)."""
    text = raw.strip()
    if not text:
        return DecodeFailed(raw, reason="empty output", expected="json document")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        return DecodeFailed(raw, reason=f"invalid JSON: {exc.msg}", expected="json document")
    if isinstance(parsed, list):
        if len(parsed) != 1:
            return DecodeFailed(raw, reason=f"expected 1 document, got {len(parsed)}", expected="json document")
        parsed = parsed[0]
    if not isinstance(parsed, dict):
        return DecodeFailed(raw, reason=f"expected object, got {type(parsed).__name__}", expected="json document")
    return Ok(parsed)


def decode_json_lines(raw: str) -> DecodeResult[list[dict[str, Any]]]:
    """Decode one JSON object per line; each line independently."""
    return collect_results(_json_line(line) for line in raw.splitlines() if line.strip())


def _json_line(line: str) -> DecodeResult[dict[str, Any]]:
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError as exc:
        return DecodeFailed(line, reason=f"invalid JSON: {exc.msg}", expected="json record")
    if not isinstance(parsed, dict):
        return DecodeFailed(line, reason=f"expected object, got {type(parsed).__name__}", expected="json record")
    return Ok(parsed)


# ---------------------------------------------------------------------------
# Record schemas
# ---------------------------------------------------------------------------


def _lookup(document: dict[str, Any], path: str) -> Any:
    """Follow a dotted path; raises KeyError naming the missing path."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            raise KeyError(path)
        value = value[part]
    return value


def _require_str(document: dict[str, Any], *paths: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for path in paths:
        value = _lookup(document, path)
        if not isinstance(value, str):
            raise KeyError(path)
        values[path] = value
    return values


def _fragment(document: dict[str, Any]) -> str:
    return json.dumps(document, sort_keys=True, default=str)


# `docker ps` Status column, used only when the State column is absent
_STATUS_TEXT = (
    (re.compile(r"^Up\b.*\(Paused\)", re.IGNORECASE), ContainerStatus.PAUSED),
    (re.compile(r"^(Up|Restarting)\b", re.IGNORECASE), ContainerStatus.RUNNING),
    (re.compile(r"^Exited\b", re.IGNORECASE), ContainerStatus.EXITED),
    (re.compile(r"^Created\b", re.IGNORECASE), ContainerStatus.CREATED),
)


def _status_from_text(text: str) -> ContainerStatus:
    for pattern, status in _STATUS_TEXT:
        if pattern.match(text.strip()):
            return status
    return ContainerStatus.UNKNOWN


def decode_container_summary(record: dict[str, Any]) -> DecodeResult[Container]:
    """Decode one ``ps --format {{json .}}`` record."""
    try:
        fields = _require_str(record, "ID", "Names", "Image")
    except KeyError as exc:
        return DecodeFailed(_fragment(record), reason=f"missing field {exc.args[0]!r}", expected="container summary")

    state = record.get("State")
    if isinstance(state, str) and state:
        status = ContainerStatus.from_runtime(state)
    elif isinstance(record.get("Status"), str):
        status = _status_from_text(record["Status"])
    else:
        return DecodeFailed(_fragment(record), reason="missing field 'State'", expected="container summary")

    name = fields["Names"].split(",")[0].lstrip("/")
    return Ok(Container(id=fields["ID"], name=name, status=status, image=fields["Image"]))


def decode_container_inspect(document: dict[str, Any]) -> DecodeResult[Container]:
    """Decode an ``inspect --type container`` document."""
    try:
        fields = _require_str(document, "Id", "Name", "State.Status", "Config.Image")
    except KeyError as exc:
        return DecodeFailed(_fragment(document), reason=f"missing field {exc.args[0]!r}", expected="container inspect")
    return Ok(
        Container(
            id=fields["Id"],
            name=fields["Name"].lstrip("/"),
            status=ContainerStatus.from_runtime(fields["State.Status"]),
            image=fields["Config.Image"],
        )
    )


def decode_image_record(record: dict[str, Any]) -> DecodeResult[Image]:
    """Decode one ``images --format {{json .}}`` record.

    ``digest`` is the registry content digest when the runtime knows one,
    otherwise the image id.
    """
    try:
        fields = _require_str(record, "Repository", "Tag", "ID")
    except KeyError as exc:
        return DecodeFailed(_fragment(record), reason=f"missing field {exc.args[0]!r}", expected="image record")

    digest = record.get("Digest")
    if not isinstance(digest, str) or not digest or digest == _NONE:
        digest = fields["ID"]
    return Ok(Image(repository=fields["Repository"], tag=fields["Tag"], digest=digest, id=fields["ID"]))


# ---------------------------------------------------------------------------
# Verb-level shapes
# ---------------------------------------------------------------------------


def decode_containers(raw: str) -> DecodeResult[list[Container]]:
    """Decode ``ps`` JSON-lines output into containers."""
    return decode_json_lines(raw).flat_map(
        lambda records: collect_results(decode_container_summary(r) for r in records)
    )


def decode_images(raw: str) -> DecodeResult[list[Image]]:
    """Decode ``images`` JSON-lines output into images."""
    return decode_json_lines(raw).flat_map(
        lambda records: collect_results(decode_image_record(r) for r in records)
    )


def decode_single_image(raw: str) -> DecodeResult[Image]:
    """Decode ``images <ref>`` output that must hold exactly one record."""

    def _exactly_one(images: list[Image]) -> DecodeResult[Image]:
        if len(images) != 1:
            return DecodeFailed(raw, reason=f"expected 1 image record, got {len(images)}", expected="image record")
        return Ok(images[0])

    return decode_images(raw).flat_map(_exactly_one)


def decode_container(raw: str) -> DecodeResult[Container]:
    """Decode raw ``inspect`` output into a container snapshot."""
    return decode_json_document(raw).flat_map(decode_container_inspect)


def decode_single_identifier(raw: str) -> DecodeResult[str]:
    """Decode output that must be exactly one identifier (``run --detach``, ``create``)."""

    def _exactly_one(ids: list[str]) -> DecodeResult[str]:
        if len(ids) != 1:
            return DecodeFailed(raw, reason=f"expected 1 identifier, got {len(ids)}", expected="identifier")
        return Ok(ids[0])

    return decode_identifiers(raw).flat_map(_exactly_one)


__all__ = [
    "decode_container",
    "decode_container_inspect",
    "decode_container_summary",
    "decode_containers",
    "decode_identifiers",
    "decode_image_record",
    "decode_images",
    "decode_json_document",
    "decode_json_lines",
    "decode_single_identifier",
    "decode_single_image",
]
