"""Handy functions for HTTP stuff."""

import urllib.parse
from typing import Iterable


class QueryParseError(ValueError):
    pass


def parse_params(items: Iterable[str]) -> dict[str, str]:
    """Turn strings like `"key=value"` into a dict.

    An item with no `=` gets an empty value. Any `=` after the first stays in the value."""
    items = list(items)
    if not items:
        raise QueryParseError("empty list")
    params = {}
    for item in items:
        key, _, value = item.partition("=")
        params[key] = value
    return params


def simple_parse_query(query: str) -> dict[str, str]:
    """Parse the query string of a URL or request path into a flat dict.

    `urllib.parse.parse_qs` gives a list of values for each key. A key with a single value gets
    that value. A key with several gets them joined with spaces inside square brackets, like `"[a b]"`.

    Example:
        >>> simple_parse_query("/page?name=Bob&x=1&x=2")
        {'name': 'Bob', 'x': '[1 2]'}
    """
    # At the very least a slash, a '?' and one character.
    if len(query) < 3:
        raise QueryParseError("query too short")
    _, separator, query_str = query.partition("?")
    if not separator:
        raise QueryParseError("no query")

    try:
        items = urllib.parse.parse_qs(query_str, keep_blank_values=True, strict_parsing=False)
    except ValueError as exc:
        raise QueryParseError(f"simple_parse_query: {exc}") from exc

    params = {}
    for key, values in items.items():
        if len(values) > 1:
            params[key] = "[" + " ".join(values) + "]"
        else:
            params[key] = values[0]
    return params
