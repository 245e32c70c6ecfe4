"""URL templating and query-string helpers."""

import re
from typing import Any, Mapping
from urllib.parse import quote

from api_endpoints.core.exceptions import TemplateError

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^{}]*)\}")
# Google Discovery paths use {name} and {+name}; skip tokens already in ${name} form
DISCOVERY_TOKEN_PATTERN = re.compile(r"(?<!\$)\{\+*([a-zA-Z0-9_.]*?)\}")

# Same unreserved set as JavaScript's encodeURIComponent
_COMPONENT_SAFE = "!*'()"


def encode_component(value: Any) -> str:
    """Percent-encode a single query key or value."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    return quote(str(value), safe=_COMPONENT_SAFE)


def interpolate(template: str, params: Mapping[str, Any]) -> str:
    """Replace every ``${key}`` in ``template`` with ``params[key]``.

    Args:
        template: String with ``${name}`` placeholders
        params: Values for substitution; extra keys are ignored

    Returns:
        The substituted string

    Raises:
        TemplateError: If any placeholder has no matching key; the message
            names every missing key

    Example:
        >>> interpolate("https://x.com/${id}/${name}", {"id": "1", "name": "a"})
        'https://x.com/1/a'
    """
    missing = []
    for name in PLACEHOLDER_PATTERN.findall(template):
        if name not in params and name not in missing:
            missing.append(name)
    if missing:
        raise TemplateError(
            f"insufficient parameters. Has {', '.join(params) or 'none'} " f"but missing {', '.join(missing)}",
            missing=missing,
        )
    return PLACEHOLDER_PATTERN.sub(lambda match: str(params[match.group(1)]), template)


def translate_to_placeholder_syntax(raw_template: str) -> str:
    """Rewrite Google-style ``{key}`` / ``{+key}`` tokens into ``${key}``.

    Dots in key names become underscores, so ``{+sub.field}`` turns into
    ``${sub_field}``.
    """
    return DISCOVERY_TOKEN_PATTERN.sub(lambda match: "${" + match.group(1).replace(".", "_") + "}", raw_template)


def make_query_string(params: Mapping[str, Any]) -> str:
    """Serialize ``params`` into a query string.

    List and tuple values produce one ``key=value`` pair per element, in
    order. ``None`` values are skipped. Keys keep insertion order.

    Returns:
        ``""`` when there is nothing to encode, otherwise ``"?"`` followed
        by ``&``-joined pairs

    Example:
        >>> make_query_string({"arr": ["one", "two"], "key": "value"})
        '?arr=one&arr=two&key=value'
    """
    pairs = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            pairs.append(f"{encode_component(key)}={encode_component(item)}")
    if not pairs:
        return ""
    return "?" + "&".join(pairs)
