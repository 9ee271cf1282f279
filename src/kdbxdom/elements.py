"""Element names and paths of the KeePass XML vocabulary."""

from __future__ import annotations

from .accessor import ConstantValue, CurrentTime, RandomIdentifier, ValueProducer
from .paths import NodePath, Segment

GROUP_ELEMENT_NAME = "Group"
ENTRY_ELEMENT_NAME = "Entry"
ICON_ELEMENT_NAME = "IconID"
UUID_ELEMENT_NAME = "UUID"
NAME_ELEMENT_NAME = "Name"
NOTES_ELEMENT_NAME = "Notes"
TIMES_ELEMENT_NAME = "Times"
IS_EXPANDED = "IsExpanded"
HISTORY_ELEMENT_NAME = "History"
KEY_ELEMENT_NAME = "Key"
VALUE_ELEMENT_NAME = "Value"

LAST_MODIFICATION_TIME_ELEMENT_NAME = "Times/LastModificationTime"
CREATION_TIME_ELEMENT_NAME = "Times/CreationTime"
LAST_ACCESS_TIME_ELEMENT_NAME = "Times/LastAccessTime"
EXPIRY_TIME_ELEMENT_NAME = "Times/ExpiryTime"
EXPIRES_ELEMENT_NAME = "Times/Expires"
USAGE_COUNT_ELEMENT_NAME = "Times/UsageCount"
LOCATION_CHANGED = "Times/LocationChanged"

STRING_ELEMENT_NAME = "String"
BINARY_ELEMENT_NAME = "Binary"


def property_path(key: str) -> NodePath:
    """Path of the String element holding the entry property ``key``."""
    return NodePath((Segment.keyed(STRING_ELEMENT_NAME, KEY_ELEMENT_NAME, key),))


def property_value_path(key: str) -> NodePath:
    return property_path(key) / VALUE_ELEMENT_NAME


def binary_property_path(name: str) -> NodePath:
    """Path of the Binary element naming the attachment ``name``."""
    return NodePath((Segment.keyed(BINARY_ELEMENT_NAME, KEY_ELEMENT_NAME, name),))


def binary_value_path(name: str) -> NodePath:
    """Path of the node whose Ref attribute points at the attachment ``name``."""
    return binary_property_path(name) / VALUE_ELEMENT_NAME


def _timestamps() -> dict[str, ValueProducer]:
    now = CurrentTime()
    return {
        CREATION_TIME_ELEMENT_NAME: now,
        LAST_MODIFICATION_TIME_ELEMENT_NAME: now,
        LAST_ACCESS_TIME_ELEMENT_NAME: now,
        EXPIRY_TIME_ELEMENT_NAME: now,
        EXPIRES_ELEMENT_NAME: ConstantValue("False"),
        USAGE_COUNT_ELEMENT_NAME: ConstantValue("0"),
        LOCATION_CHANGED: now,
    }


# Elements every Group must carry, with the value used when one is missing
GROUP_DEFAULTS: dict[str, ValueProducer] = {
    UUID_ELEMENT_NAME: RandomIdentifier(),
    NAME_ELEMENT_NAME: ConstantValue(""),
    NOTES_ELEMENT_NAME: ConstantValue(""),
    ICON_ELEMENT_NAME: ConstantValue("48"),
    **_timestamps(),
    IS_EXPANDED: ConstantValue("True"),
}

# Elements every Entry must carry, with the value used when one is missing
ENTRY_DEFAULTS: dict[str, ValueProducer] = {
    UUID_ELEMENT_NAME: RandomIdentifier(),
    ICON_ELEMENT_NAME: ConstantValue("0"),
    **_timestamps(),
}
