"""Challenge detection for subject pages.

A tolerant regex scanner over ``<input>`` and ``<form>`` tags, not a full
HTML parser. Attribute rules:
  - values may be double-quoted, single-quoted or bare
  - an attribute without ``=value`` parses as an empty string
  - attribute names are case-insensitive; a repeated attribute keeps its last value
"""

from __future__ import annotations

import re

from subjectpage.models.challenge import Challenge

_INPUT_TAG_RE = re.compile(r"<input\b[^>]*>", re.IGNORECASE)
_FORM_TAG_RE = re.compile(r"<form\b[^>]*>", re.IGNORECASE)
_TAG_NAME_RE = re.compile(r"^<\s*[a-zA-Z0-9]+")
_ATTR_RE = re.compile(
    r"""([a-zA-Z0-9:_-]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+)))?"""
)

CHALLENGE_FIELDS = ("tok", "cha", "red")


def parse_attributes(tag: str) -> dict[str, str]:
    """Parse the attributes of a single start tag into a lowercase-keyed dict."""
    attrs: dict[str, str] = {}
    body = _TAG_NAME_RE.sub("", tag, count=1)
    for match in _ATTR_RE.finditer(body):
        name, double, single, bare = match.groups()
        attrs[name.lower()] = next((v for v in (double, single, bare) if v is not None), "")
    return attrs


def find_input_value(html: str, key: str) -> str | None:
    """Return the ``value`` of the first input named (or, lacking a name, id'd) ``key``."""
    target = key.lower()
    for tag in _INPUT_TAG_RE.findall(html):
        attrs = parse_attributes(tag)
        name = attrs["name"] if "name" in attrs else attrs.get("id", "")
        if name.lower() == target:
            return attrs.get("value")
    return None


def find_form_action(html: str) -> str | None:
    """Pick the challenge form's action.

    Prefers the first form whose id or name is ``sec``; otherwise the first
    form with any action.
    """
    forms = [parse_attributes(tag) for tag in _FORM_TAG_RE.findall(html)]
    for attrs in forms:
        is_sec = attrs.get("id", "").lower() == "sec" or attrs.get("name", "").lower() == "sec"
        if is_sec and attrs.get("action"):
            return attrs["action"]
    for attrs in forms:
        if attrs.get("action"):
            return attrs["action"]
    return None


def parse_challenge(html: str) -> Challenge | None:
    """Return the embedded challenge, or ``None`` if any of tok/cha/red is missing or empty."""
    values = {key: find_input_value(html, key) for key in CHALLENGE_FIELDS}
    if not all(values.values()):
        return None
    return Challenge(
        tok=values["tok"],
        cha=values["cha"],
        red=values["red"],
        action=find_form_action(html),
    )


def has_challenge(html: str) -> bool:
    return parse_challenge(html) is not None
