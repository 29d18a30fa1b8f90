"""vmlcompose.common -- shared utilities for markup resolution.

Contains: path variable resolution, attribute value coercion, case
conversion, JSON map parsing, and the key-by-key cascade merge used for
styles and markup hints.
"""

import json
import re


# ── Prop values ────────────────────────────────────────────────────
# A prop value is a bool, a number, a string, or a nested map of prop
# values. Attribute strings are coerced into the first three; JSON blobs
# (props, styles, markup) may also carry nested maps.

PropValue = bool | int | float | str | dict

_NUMBER_RE = re.compile(r"^[-+]?\d+(\.\d+)?$")


def parse_number(value: str | None) -> int | float | None:
    """Parse a plain decimal attribute value, or return None.

    Only integer and decimal literals are accepted ("12", "-3.5"). Values
    with exponents, units or surrounding text are not numbers here.
    """
    if not value:
        return None
    if not _NUMBER_RE.match(value):
        return None
    if "." in value:
        return float(value)
    return int(value)


def coerce_attr_value(value: str) -> PropValue:
    """Coerce an attribute string to a typed prop value.

    "true"/"false" become booleans, numeric-looking strings become
    numbers, everything else stays a string.
    """
    if value == "true":
        return True
    if value == "false":
        return False
    num = parse_number(value)
    if num is not None:
        return num
    return value


# ── Case conversion ────────────────────────────────────────────────

def to_camel_case(value: str) -> str:
    """'sample-rate-hz' -> 'sampleRateHz'."""
    return re.sub(r"-([a-z])", lambda m: m.group(1).upper(), value)


def to_pascal_case(value: str) -> str:
    """'progress-bar' -> 'ProgressBar'."""
    return "".join(part[:1].upper() + part[1:] for part in value.split("-") if part)


# ── JSON maps ──────────────────────────────────────────────────────

def parse_json_map(raw: str | None, what: str) -> dict | None:
    """Parse a JSON-encoded object attribute (styles, markup, props).

    Returns None when the attribute is absent or empty.

    Raises:
        ValueError: Malformed JSON, or JSON that is not an object.
    """
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{what}: malformed JSON ({exc.msg})") from exc
    if not isinstance(value, dict):
        raise ValueError(
            f"{what}: expected a JSON object, got {type(value).__name__}"
        )
    return value


def merge_cascaded(parent: dict | None, child: dict | None) -> dict | None:
    """Cascade a parent map into a child map, child keys winning.

    The merge is shallow: a child key replaces the parent's value for that
    key outright. Either side may be None.
    """
    if not parent:
        return dict(child) if child is not None else None
    if not child:
        return dict(parent)
    return {**parent, **child}


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)
