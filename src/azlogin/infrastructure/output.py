"""Output formatting compatible with Azure CLI conventions (json, tsv, table + JMESPath)"""

import json
from typing import Any, Optional

import click
import jmespath
from jmespath.exceptions import JMESPathError

OUTPUT_FORMATS = ("json", "tsv", "table")


class OutputError(Exception):
    """Invalid query or output format."""

    pass


def _is_scalar(value: Any) -> bool:
    return not isinstance(value, (dict, list, tuple))


def _render_json(data: Any) -> str:
    return json.dumps(data, indent=2)


def _render_tsv(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bool):
        # match JSON spelling, as Azure CLI does
        return json.dumps(data)
    if _is_scalar(data):
        return str(data)
    if isinstance(data, dict) and len(data) == 1:
        value = next(iter(data.values()))
        if _is_scalar(value):
            return _render_tsv(value)
    return json.dumps(data, separators=(",", ":"))


def render(data: Any, output_format: str = "json", query: Optional[str] = None) -> Optional[str]:
    """Apply an optional JMESPath query and render the result

    Args:
        data: JSON-compatible data
        output_format: json, tsv or table (case-insensitive)
        query: Optional JMESPath expression

    Returns:
        Rendered text, or None when there is nothing to print

    Raises:
        OutputError: If the query is invalid or the format is unsupported
    """
    if query:
        try:
            data = jmespath.search(query, data)
        except JMESPathError as e:
            raise OutputError(f"invalid query: {e}") from e

    fmt = (output_format or "").lower()
    if fmt in ("json", "table"):
        # table output is JSON for now; there is no tabular layout yet
        return _render_json(data)
    if fmt == "tsv":
        return _render_tsv(data) if data is not None else None
    raise OutputError(f"unsupported output format: {output_format}")


def print_output(data: Any, output_format: str = "json", query: Optional[str] = None) -> None:
    """Render data and write it to stdout"""
    text = render(data, output_format, query)
    if text is not None:
        click.echo(text)
