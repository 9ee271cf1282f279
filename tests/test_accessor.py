"""Tests for path-based reading and writing."""

import re
from datetime import UTC, datetime, timedelta, timezone
from xml.etree.ElementTree import Element, SubElement, fromstring

import pytest

from kdbxdom import (
    ConstantValue,
    CurrentTime,
    NodePath,
    QueryError,
    RandomIdentifier,
    count,
    decode_base64,
    ensure_all,
    ensure_text,
    find,
    find_all,
    format_time,
    get_or_create,
    read_text,
    touch,
    write_text,
)
from kdbxdom.elements import (
    ENTRY_DEFAULTS,
    LAST_MODIFICATION_TIME_ELEMENT_NAME,
    property_path,
    property_value_path,
)

TIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


@pytest.fixture
def entry() -> Element:
    return fromstring(
        "<Entry>"
        "<UUID>AAAAAAAAAAAAAAAAAAAAAA==</UUID>"
        "<Times><CreationTime>2020-01-01T00:00:00Z</CreationTime></Times>"
        "<String><Key>Title</Key><Value>Gmail</Value></String>"
        "<String><Key>Notes</Key><Value>first</Value></String>"
        "<String><Key>Notes</Key><Value>second</Value></String>"
        "</Entry>"
    )


class TestFind:
    """Tests for lookups that never create."""

    def test_find_existing(self, entry: Element) -> None:
        """Test finding an existing node."""
        node = find("Times/CreationTime", entry)
        assert node is not None
        assert node.text == "2020-01-01T00:00:00Z"

    def test_find_missing_returns_none(self, entry: Element) -> None:
        """Test that a missing node is None and nothing is created."""
        before = len(list(entry.iter()))
        assert find("Times/ExpiryTime", entry) is None
        assert len(list(entry.iter())) == before

    def test_find_returns_first(self, entry: Element) -> None:
        """Test that find returns the first match in document order."""
        assert find(property_value_path("Notes"), entry).text == "first"

    def test_find_all(self, entry: Element) -> None:
        """Test that find_all returns every match in order."""
        values = find_all("String[Key='Notes']/Value", entry)
        assert [v.text for v in values] == ["first", "second"]

    def test_find_all_empty(self, entry: Element) -> None:
        """Test that no match gives an empty list."""
        assert find_all("AutoType", entry) == []

    def test_count(self, entry: Element) -> None:
        """Test counting matches."""
        assert count("String", entry) == 3
        assert count("String[Key='Notes']", entry) == 2
        assert count("Missing", entry) == 0

    def test_malformed_path_raises(self, entry: Element) -> None:
        """Test that malformed paths raise instead of returning None."""
        with pytest.raises(QueryError):
            find("String[Key=", entry)
        with pytest.raises(QueryError):
            find_all("/Absolute", entry)
        with pytest.raises(QueryError):
            count("Times//", entry)


class TestGetOrCreate:
    """Tests for on-demand creation."""

    def test_returns_existing(self, entry: Element) -> None:
        """Test that an existing node is returned unchanged."""
        node = get_or_create("Times/CreationTime", entry)
        assert node is find("Times/CreationTime", entry)
        assert count("Times", entry) == 1

    def test_creates_missing_leaf(self, entry: Element) -> None:
        """Test creating a leaf under an existing parent."""
        node = get_or_create("Times/ExpiryTime", entry)
        times = find("Times", entry)
        assert list(times)[-1] is node
        assert count("Times", entry) == 1

    def test_creates_full_hierarchy(self) -> None:
        """Test creating every missing segment."""
        root = Element("KeePassFile")
        node = get_or_create("Root/Group/Entry/Times/UsageCount", root)
        assert node.tag == "UsageCount"
        assert find("Root/Group/Entry/Times/UsageCount", root) is node

    def test_creates_filtered_segment(self, entry: Element) -> None:
        """Test that a created keyed segment satisfies its filter."""
        node = get_or_create("String[Key='Password']/Value", entry)
        string = find(property_path("Password"), entry)
        assert string is not None
        assert string.find("Key").text == "Password"
        assert string.find("Value") is node

    def test_creates_attribute_segment(self) -> None:
        """Test that a created attribute segment carries the attribute."""
        binaries = Element("Binaries")
        node = get_or_create("Binary[@ID='4']", binaries)
        assert node.get("ID") == "4"

    @pytest.mark.parametrize(
        "path",
        [
            "Times/LastModificationTime",
            "String[Key='URL']/Value",
            "String[Key/text()='Custom']/Value",
            "Binary[Key='file.txt']/Value",
            "AutoType/Association/Window",
            "Tags[.='work']",
            "CustomData/Item[@Key='k']/Value",
        ],
    )
    def test_create_then_find(self, entry: Element, path: str) -> None:
        """Test that find locates what get_or_create just made."""
        created = get_or_create(path, entry)
        assert find(path, entry) is created
        assert get_or_create(path, entry) is created

    def test_accepts_node_path(self, entry: Element) -> None:
        """Test that a NodePath works like its text form."""
        path = NodePath.parse("History/Entry")
        created = get_or_create(path, entry)
        assert find(str(path), entry) is created

    def test_descendant_path_existing(self) -> None:
        """Test that a descendant path may be used when it matches."""
        root = fromstring("<KeePassFile><Meta><Binaries/></Meta></KeePassFile>")
        assert get_or_create("//Binaries", root) is root.find("Meta/Binaries")

    def test_descendant_path_missing_raises(self) -> None:
        """Test that a missing descendant path cannot be created."""
        root = Element("KeePassFile")
        with pytest.raises(QueryError, match="descendant"):
            get_or_create("//Binaries", root)
        assert len(root) == 0


class TestText:
    """Tests for reading and writing text content."""

    def test_read_text(self, entry: Element) -> None:
        """Test reading existing text."""
        assert read_text(property_value_path("Title"), entry) == "Gmail"

    def test_read_text_missing(self, entry: Element) -> None:
        """Test that missing text is None."""
        assert read_text(property_value_path("URL"), entry) is None

    def test_read_text_empty_element(self) -> None:
        """Test that an empty element reads as an empty string."""
        assert read_text("Notes", fromstring("<Group><Notes/></Group>")) == ""

    def test_read_text_includes_descendants(self, entry: Element) -> None:
        """Test that text content spans child elements."""
        assert read_text("Times", entry) == "2020-01-01T00:00:00Z"

    def test_write_text_overwrites(self, entry: Element) -> None:
        """Test that write_text always replaces content."""
        node = write_text(property_value_path("Title"), entry, "GitHub")
        assert node.text == "GitHub"
        assert read_text(property_value_path("Title"), entry) == "GitHub"

    def test_write_text_creates(self, entry: Element) -> None:
        """Test that write_text creates missing nodes."""
        write_text(property_value_path("URL"), entry, "https://example.com")
        assert read_text(property_value_path("URL"), entry) == "https://example.com"

    def test_write_text_replaces_children_keeps_attributes(self) -> None:
        """Test that writing text drops child elements but not attributes."""
        node = fromstring("<Value Protected='True'><x/>old</Value>")
        parent = Element("String")
        parent.append(node)
        write_text("Value", parent, "new")
        assert len(node) == 0
        assert node.text == "new"
        assert node.get("Protected") == "True"

    def test_ensure_text_first_write_wins(self) -> None:
        """Test that ensure_text only initializes once."""
        entry = Element("Entry")
        assert ensure_text("Times/Expires", entry, "False") == "False"
        assert ensure_text("Times/Expires", entry, "True") == "False"
        assert read_text("Times/Expires", entry) == "False"
        assert count("Times/Expires", entry) == 1

    def test_ensure_text_keeps_existing(self, entry: Element) -> None:
        """Test that existing content is returned untouched."""
        assert ensure_text(property_value_path("Title"), entry, "Other") == "Gmail"

    def test_ensure_text_keeps_existing_empty(self) -> None:
        """Test that an existing empty element is not filled in."""
        group = fromstring("<Group><Notes/></Group>")
        assert ensure_text("Notes", group, "default") == ""

    @pytest.mark.parametrize("write", [ensure_text, write_text])
    def test_child_keyed_leaf_rejected(self, write, entry: Element) -> None:
        """Test that text cannot replace the child a leaf is keyed by."""
        with pytest.raises(QueryError, match="keyed by a child"):
            write("String[Key='URL']", entry, "https://example.com")
        assert count("String", entry) == 3
        assert find(property_path("URL"), entry) is None

    def test_child_keyed_leaf_existing_untouched(self, entry: Element) -> None:
        """Test that an existing keyed leaf keeps its Key and Value."""
        with pytest.raises(QueryError):
            write_text(property_path("Title"), entry, "GitHub")
        assert read_text(property_value_path("Title"), entry) == "Gmail"
        assert count(property_path("Title"), entry) == 1

    @pytest.mark.parametrize("write", [ensure_text, write_text])
    def test_text_filter_mismatch_rejected(self, write) -> None:
        """Test that text differing from the leaf's own filter is refused."""
        entry = Element("Entry")
        with pytest.raises(QueryError, match="text filter"):
            write("Tags[.='work']", entry, "home")
        assert len(entry) == 0

    def test_text_filter_match_allowed(self) -> None:
        """Test that text equal to the leaf's filter is written once."""
        entry = Element("Entry")
        assert ensure_text("Tags[.='work']", entry, "work") == "work"
        assert ensure_text("Tags[.='work']", entry, "work") == "work"
        write_text("Tags[.='work']", entry, "work")
        assert count("Tags", entry) == 1
        assert read_text("Tags[.='work']", entry) == "work"

    def test_existing_text_filtered_leaf_ignores_default(self) -> None:
        """Test that ensure_text never writes over a leaf that already matches."""
        entry = fromstring("<Entry><Tags>work</Tags></Entry>")
        assert ensure_text("Tags[.='work']", entry, "home") == "work"
        assert count("Tags", entry) == 1

    def test_attribute_filtered_leaf(self) -> None:
        """Test that writing text keeps an attribute filter satisfied."""
        data = Element("CustomData")
        assert ensure_text("Item[@Key='k']", data, "first") == "first"
        assert ensure_text("Item[@Key='k']", data, "second") == "first"
        write_text("Item[@Key='k']", data, "third")
        assert count("Item", data) == 1
        assert read_text("Item[@Key='k']", data) == "third"

    def test_touch_keyed_leaf_rejected(self, entry: Element) -> None:
        """Test that touch refuses a child-keyed leaf as well."""
        with pytest.raises(QueryError):
            touch("String[Key='Modified']", entry)
        assert count("String", entry) == 3

    def test_key_with_both_quote_characters(self, entry: Element) -> None:
        """Test a property key holding both ' and \"."""
        key = 'it\'s "quoted"'
        node = write_text(property_value_path(key), entry, "x")
        assert read_text(property_value_path(key), entry) == "x"
        assert find(property_path(key), entry).find("Key").text == key
        assert get_or_create(property_value_path(key), entry) is node
        assert ensure_text(property_value_path(key), entry, "y") == "x"
        assert count(property_path(key), entry) == 1


class TestTime:
    """Tests for timestamps."""

    def test_format_time(self) -> None:
        """Test the KDBX timestamp format."""
        dt = datetime(2025, 1, 15, 10, 30, 45, 123456, tzinfo=UTC)
        assert format_time(dt) == "2025-01-15T10:30:45Z"

    def test_format_time_converts_to_utc(self) -> None:
        """Test that aware datetimes are converted to UTC."""
        dt = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_time(dt) == "2025-01-15T10:00:00Z"

    def test_format_time_naive_is_utc(self) -> None:
        """Test that naive datetimes are taken as UTC."""
        assert format_time(datetime(2025, 1, 15, 10, 0, 0)) == "2025-01-15T10:00:00Z"

    def test_format_time_now(self) -> None:
        """Test formatting the current time."""
        assert TIME_PATTERN.match(format_time())

    def test_touch(self, entry: Element) -> None:
        """Test touch writes the given time."""
        now = datetime(2024, 6, 1, 8, 0, 0, tzinfo=UTC)
        node = touch(LAST_MODIFICATION_TIME_ELEMENT_NAME, entry, now=now)
        assert node.text == "2024-06-01T08:00:00Z"

    def test_touch_overwrites(self, entry: Element) -> None:
        """Test touch replaces an existing timestamp."""
        touch("Times/CreationTime", entry)
        text = read_text("Times/CreationTime", entry)
        assert text != "2020-01-01T00:00:00Z"
        assert TIME_PATTERN.match(text)


class TestEnsureAll:
    """Tests for initializing several paths at once."""

    def test_value_producers(self) -> None:
        """Test each kind of producer."""
        group = Element("Group")
        ensure_all(
            group,
            {
                "UUID": RandomIdentifier(),
                "IconID": ConstantValue("48"),
                "Name": "General",
                "Times/CreationTime": CurrentTime(),
            },
        )
        assert len(decode_base64(read_text("UUID", group))) == 16
        assert read_text("IconID", group) == "48"
        assert read_text("Name", group) == "General"
        assert TIME_PATTERN.match(read_text("Times/CreationTime", group))

    def test_existing_values_untouched(self, entry: Element) -> None:
        """Test that existing elements keep their values."""
        ensure_all(entry, ENTRY_DEFAULTS)
        assert read_text("UUID", entry) == "AAAAAAAAAAAAAAAAAAAAAA=="
        assert read_text("Times/CreationTime", entry) == "2020-01-01T00:00:00Z"
        assert read_text("Times/Expires", entry) == "False"
        assert read_text("Times/UsageCount", entry) == "0"

    def test_idempotent(self) -> None:
        """Test that a second call changes nothing."""
        entry = Element("Entry")
        ensure_all(entry, ENTRY_DEFAULTS)
        snapshot = [(e.tag, e.text) for e in entry.iter()]
        ensure_all(entry, ENTRY_DEFAULTS)
        assert [(e.tag, e.text) for e in entry.iter()] == snapshot

    def test_producer_not_called_when_present(self) -> None:
        """Test that producers are only consulted for missing elements."""

        class Exploding:
            def value(self) -> str:
                raise AssertionError("producer should not be called")

        group = Element("Group")
        SubElement(group, "UUID").text = "x"
        ensure_all(group, {"UUID": Exploding()})
        assert read_text("UUID", group) == "x"
