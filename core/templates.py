"""
Template string parsing.

A CPR template lists the labels of the value nodes in a forecast's XML
payload, e.g. "Year:::|Month::|Price ($/MMBtu)::|". Each label becomes one
result column after sanitization.
"""
import keyword
import re
from typing import List, Optional

from config import TEMPLATE_DELIMITER, TEMPLATE_MARKER
from models import FieldSpec, TemplateField

_INVALID_CHARS = re.compile(r"[^0-9A-Za-z_]")


def sanitize_column_name(name: str) -> str:
    """
    Turn an XML label into a valid column identifier.

    Examples:
        >>> sanitize_column_name("Price ($/MMBtu)")
        'Price____MMBtu_'

        >>> sanitize_column_name("2019")
        'X2019'
    """
    cleaned = _INVALID_CHARS.sub("_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = "X" + cleaned
    if keyword.iskeyword(cleaned):
        cleaned += "_"
    return cleaned


def split_template(template_string: Optional[str]) -> List[str]:
    """
    Split a template into source labels, dropping markers and blank tokens.

    Labels keep any surrounding whitespace so they still match the payload's
    l attributes exactly.
    """
    if not isinstance(template_string, str) or not template_string.strip():
        return []

    labels = []
    for token in template_string.split(TEMPLATE_DELIMITER):
        label = token.replace(TEMPLATE_MARKER, "")
        if label.strip():
            labels.append(label)
    return labels


def parse_template(template_string: Optional[str]) -> FieldSpec:
    """
    Parse a template string into an ordered FieldSpec.

    An empty, missing or delimiter-only template yields an empty FieldSpec
    rather than an error.

    Args:
        template_string: Raw TemplateString value

    Returns:
        Tuple of TemplateField in template order

    Examples:
        >>> [f.column_name for f in parse_template("Year:::|Fuel Price::|")]
        ['Year', 'Fuel_Price']
    """
    return tuple(
        TemplateField(source_name=label, column_name=sanitize_column_name(label.strip()))
        for label in split_template(template_string)
    )
