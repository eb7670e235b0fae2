"""Tests for feed document rendering."""

import csv
import io
import xml.etree.ElementTree as ET

from feedsync.domain.value_objects import FeedSettings
from feedsync.rendering import CONTENT_TYPES, render_feed
from feedsync.rendering.renderer import G_NS, STANDARD_COLUMNS


class TestXmlRendering:
    """Tests for RSS output."""

    def test_document_structure(self, make_product) -> None:
        """XML is an RSS 2.0 channel with one item per product."""
        content = render_feed(
            [make_product(id="1"), make_product(id="2")],
            FeedSettings(format="XML"),
            title="US Feed",
            link="https://shop.example.com",
        )

        assert content.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')
        root = ET.fromstring(content.split("\n", 1)[1])
        assert root.tag == "rss"
        assert root.get("version") == "2.0"

        channel = root.find("channel")
        assert channel.findtext("title") == "US Feed"
        assert channel.findtext("link") == "https://shop.example.com"

        items = channel.findall("item")
        assert [item.findtext(f"{{{G_NS}}}id") for item in items] == ["1", "2"]
        assert items[0].findtext(f"{{{G_NS}}}price") == "19.99 USD"

    def test_empty_optional_fields_omitted(self, make_product) -> None:
        """Empty identifiers are not emitted as empty elements."""
        content = render_feed([make_product(gtin="")], FeedSettings(), title="Feed")
        assert "g:gtin" not in content
        assert "<g:mpn>ACME-TEE-1</g:mpn>" in content

    def test_special_characters_escaped(self, make_product) -> None:
        """Markup in product text is escaped."""
        content = render_feed(
            [make_product(title="Salt & Pepper <Set>")], FeedSettings(), title="Feed"
        )
        assert "Salt &amp; Pepper &lt;Set&gt;" in content

    def test_custom_attributes(self, make_product) -> None:
        """Custom attributes become g: elements with safe tag names."""
        product = make_product(custom_attributes={"custom label 0": "summer"})
        content = render_feed([product], FeedSettings(), title="Feed")
        assert "<g:custom_label_0>summer</g:custom_label_0>" in content

    def test_custom_attribute_names_made_valid(self, make_product) -> None:
        """Names that cannot start an XML element are prefixed."""
        product = make_product(custom_attributes={"1color": "red", "-size": "M"})
        content = render_feed([product], FeedSettings(), title="Feed")

        item = ET.fromstring(content.split("\n", 1)[1]).find("channel/item")
        assert item.findtext(f"{{{G_NS}}}_1color") == "red"
        assert item.findtext(f"{{{G_NS}}}_-size") == "M"

    def test_control_characters_dropped(self, make_product) -> None:
        """Characters XML cannot carry are removed from product text."""
        product = make_product(
            title="Tee\x00 shirt\x1f",
            description="Line one\nLine two\x0b",
            custom_attributes={"material": "cot\x08ton"},
        )
        content = render_feed([product], FeedSettings(), title="Feed\x01")

        root = ET.fromstring(content.split("\n", 1)[1])
        assert root.findtext("channel/title") == "Feed"
        item = root.find("channel/item")
        assert item.findtext(f"{{{G_NS}}}title") == "Tee shirt"
        assert item.findtext(f"{{{G_NS}}}description") == "Line one\nLine two"
        assert item.findtext(f"{{{G_NS}}}material") == "cotton"

    def test_empty_feed(self) -> None:
        """An empty product list still produces a valid channel."""
        content = render_feed([], FeedSettings(), title="Feed")
        root = ET.fromstring(content.split("\n", 1)[1])
        assert root.find("channel").findall("item") == []


class TestDelimitedRendering:
    """Tests for CSV and TSV output."""

    def test_csv_header_and_rows(self, make_product) -> None:
        """CSV has the standard header and one row per product."""
        content = render_feed(
            [make_product(id="1"), make_product(id="2", description="Soft, warm")],
            FeedSettings(format="CSV"),
            title="Feed",
        )

        rows = list(csv.reader(io.StringIO(content)))
        assert tuple(rows[0]) == STANDARD_COLUMNS
        assert len(rows) == 3
        assert rows[2][rows[0].index("description")] == "Soft, warm"

    def test_tsv_flattens_tabs_and_newlines(self, make_product) -> None:
        """TSV cells never contain tabs or line breaks."""
        product = make_product(description="Line one\nLine\ttwo")
        content = render_feed([product], FeedSettings(format="TSV"), title="Feed")

        lines = content.rstrip("\n").split("\n")
        assert len(lines) == 2
        header = lines[0].split("\t")
        row = lines[1].split("\t")
        assert len(row) == len(header)
        assert row[header.index("description")] == "Line one Line two"

    def test_custom_columns_appended(self, make_product) -> None:
        """Custom attributes add sorted columns after the standard ones."""
        products = [
            make_product(id="1", custom_attributes={"size": "M"}),
            make_product(id="2", custom_attributes={"color": "red"}),
        ]
        content = render_feed(products, FeedSettings(format="CSV"), title="Feed")

        rows = list(csv.reader(io.StringIO(content)))
        assert rows[0][-2:] == ["color", "size"]
        assert rows[1][-2:] == ["", "M"]
        assert rows[2][-2:] == ["red", ""]

    def test_empty_delimited_feed(self) -> None:
        """An empty product list renders just the header."""
        content = render_feed([], FeedSettings(format="TSV"), title="Feed")
        assert content == "\t".join(STANDARD_COLUMNS) + "\n"


class TestContentTypes:
    """Tests for served content types."""

    def test_content_types(self) -> None:
        """Each format has its media type."""
        assert CONTENT_TYPES[FeedSettings(format="XML").format] == "application/xml"
        assert CONTENT_TYPES[FeedSettings(format="CSV").format] == "text/csv"
        assert CONTENT_TYPES[FeedSettings(format="TSV").format] == "text/tab-separated-values"
