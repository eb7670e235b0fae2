"""Render validated products into marketplace feed documents.

XML output is an RSS 2.0 channel with Google Shopping ``g:`` elements;
CSV and TSV share one column layout.
"""

import csv
import io
import re
import xml.etree.ElementTree as ET
from collections.abc import Sequence

import structlog

from feedsync.domain.value_objects import FeedFormat, FeedSettings, ProductRecord

logger = structlog.get_logger()

# Google Shopping namespace
G_NS = "http://base.google.com/ns/1.0"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

STANDARD_COLUMNS = (
    "id",
    "title",
    "description",
    "link",
    "image_link",
    "price",
    "brand",
    "condition",
    "availability",
    "gtin",
    "mpn",
    "item_group_id",
)

CONTENT_TYPES: dict[FeedFormat, str] = {
    FeedFormat.XML: "application/xml",
    FeedFormat.CSV: "text/csv",
    FeedFormat.TSV: "text/tab-separated-values",
}

_INVALID_TAG_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
# Control characters XML 1.0 does not allow, even escaped
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class RenderError(Exception):
    """Feed document could not be produced."""


def render_feed(
    products: Sequence[ProductRecord],
    settings: FeedSettings,
    title: str,
    link: str = "",
    description: str = "Product feed for Google Merchant Center",
) -> str:
    """Render products in the feed's configured format.

    Args:
        products: Validated products; may be empty.
        settings: Feed settings (format is read from here).
        title: Channel title (XML only).
        link: Channel link (XML only).
        description: Channel description (XML only).

    Returns:
        The feed document.

    Raises:
        RenderError: If the document cannot be produced.
    """
    try:
        if settings.format == FeedFormat.XML:
            content = render_xml(products, title, link, description)
        elif settings.format == FeedFormat.TSV:
            content = render_delimited(products, delimiter="\t")
        else:
            content = render_delimited(products, delimiter=",")
    except (ValueError, TypeError) as e:
        raise RenderError(f"Failed to render {settings.format.value} feed: {e}") from e

    logger.debug(
        "Feed rendered",
        format=settings.format.value,
        product_count=len(products),
        size_bytes=len(content.encode("utf-8")),
    )
    return content


def custom_columns(products: Sequence[ProductRecord]) -> list[str]:
    """Custom attribute names present on any product, sorted."""
    names: set[str] = set()
    for product in products:
        names.update(product.custom_attributes)
    return sorted(names - set(STANDARD_COLUMNS))


def render_xml(
    products: Sequence[ProductRecord],
    title: str,
    link: str,
    description: str,
) -> str:
    """Render an RSS 2.0 document with one ``item`` per product."""
    ET.register_namespace("g", G_NS)

    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = xml_text(title)
    ET.SubElement(channel, "link").text = xml_text(link)
    ET.SubElement(channel, "description").text = xml_text(description)

    for product in products:
        item = ET.SubElement(channel, "item")
        for name in STANDARD_COLUMNS:
            value = product.get(name)
            # Optional identifiers are omitted rather than sent empty
            if value:
                ET.SubElement(item, f"{{{G_NS}}}{name}").text = xml_text(value)
        for name in sorted(product.custom_attributes):
            if name in STANDARD_COLUMNS:
                continue
            tag = xml_tag_name(name)
            value = xml_text(product.custom_attributes[name])
            ET.SubElement(item, f"{{{G_NS}}}{tag}").text = value

    ET.indent(rss, space="  ")
    return XML_DECLARATION + ET.tostring(rss, encoding="unicode") + "\n"


def xml_tag_name(name: str) -> str:
    """Turn an attribute name into a valid XML element name."""
    tag = _INVALID_TAG_CHARS.sub("_", name)
    # Names must start with a letter or underscore
    if not tag or not (tag[0].isalpha() or tag[0] == "_"):
        tag = f"_{tag}"
    return tag


def xml_text(value: str) -> str:
    """Drop characters that cannot appear in an XML document."""
    return _INVALID_XML_CHARS.sub("", value)


def render_delimited(products: Sequence[ProductRecord], delimiter: str) -> str:
    """Render a header row plus one row per product."""
    columns = list(STANDARD_COLUMNS) + custom_columns(products)

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    writer.writerow(columns)
    for product in products:
        writer.writerow([_cell(product.get(name), delimiter) for name in columns])
    return buffer.getvalue()


def _cell(value: str, delimiter: str) -> str:
    # TSV consumers do not understand quoting; flatten instead
    if delimiter == "\t":
        return value.replace("\t", " ").replace("\r", " ").replace("\n", " ")
    return value
