"""Well-known AT-SPI bus names, paths, interfaces and the Role enumeration."""

from __future__ import annotations

from enum import IntEnum

# Session bus service that hands out the accessibility bus address
A11Y_BUS_NAME = "org.a11y.Bus"
A11Y_BUS_PATH = "/org/a11y/bus"
A11Y_BUS_INTERFACE = "org.a11y.Bus"
BUS_ADDRESS_ENV = "AT_SPI_BUS_ADDRESS"

DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"

REGISTRY_NAME = "org.a11y.atspi.Registry"
REGISTRY_PATH = "/org/a11y/atspi/registry"
REGISTRY_INTERFACE = "org.a11y.atspi.Registry"

CACHE_INTERFACE = "org.a11y.atspi.Cache"
EVENT_INTERFACE_PREFIX = "org.a11y.atspi.Event."
APPLICATION_INTERFACE = "org.a11y.atspi.Application"
ACCESSIBLE_INTERFACE = "org.a11y.atspi.Accessible"

TOOLKIT_PLACEHOLDER = "Could not read toolkit property"
NAME_PLACEHOLDER = "Could not read name property"
DESCRIPTION_PLACEHOLDER = "Could not read description property"


class Role(IntEnum):
    """Semantic classification of an accessible object (AtspiRole wire values)."""

    INVALID = 0
    ACCELERATOR_LABEL = 1
    ALERT = 2
    ANIMATION = 3
    ARROW = 4
    CALENDAR = 5
    CANVAS = 6
    CHECK_BOX = 7
    CHECK_MENU_ITEM = 8
    COLOR_CHOOSER = 9
    COLUMN_HEADER = 10
    COMBO_BOX = 11
    DATE_EDITOR = 12
    DESKTOP_ICON = 13
    DESKTOP_FRAME = 14
    DIAL = 15
    DIALOG = 16
    DIRECTORY_PANE = 17
    DRAWING_AREA = 18
    FILE_CHOOSER = 19
    FILLER = 20
    FOCUS_TRAVERSABLE = 21
    FONT_CHOOSER = 22
    FRAME = 23
    GLASS_PANE = 24
    HTML_CONTAINER = 25
    ICON = 26
    IMAGE = 27
    INTERNAL_FRAME = 28
    LABEL = 29
    LAYERED_PANE = 30
    LIST = 31
    LIST_ITEM = 32
    MENU = 33
    MENU_BAR = 34
    MENU_ITEM = 35
    OPTION_PANE = 36
    PAGE_TAB = 37
    PAGE_TAB_LIST = 38
    PANEL = 39
    PASSWORD_TEXT = 40
    POPUP_MENU = 41
    PROGRESS_BAR = 42
    PUSH_BUTTON = 43
    RADIO_BUTTON = 44
    RADIO_MENU_ITEM = 45
    ROOT_PANE = 46
    ROW_HEADER = 47
    SCROLL_BAR = 48
    SCROLL_PANE = 49
    SEPARATOR = 50
    SLIDER = 51
    SPIN_BUTTON = 52
    SPLIT_PANE = 53
    STATUS_BAR = 54
    TABLE = 55
    TABLE_CELL = 56
    TABLE_COLUMN_HEADER = 57
    TABLE_ROW_HEADER = 58
    TEAROFF_MENU_ITEM = 59
    TERMINAL = 60
    TEXT = 61
    TOGGLE_BUTTON = 62
    TOOL_BAR = 63
    TOOL_TIP = 64
    TREE = 65
    TREE_TABLE = 66
    UNKNOWN = 67
    VIEWPORT = 68
    WINDOW = 69
    EXTENDED = 70
    HEADER = 71
    FOOTER = 72
    PARAGRAPH = 73
    RULER = 74
    APPLICATION = 75
    AUTOCOMPLETE = 76
    EDITBAR = 77
    EMBEDDED = 78
    ENTRY = 79
    CHART = 80
    CAPTION = 81
    DOCUMENT_FRAME = 82
    HEADING = 83
    PAGE = 84
    SECTION = 85
    REDUNDANT_OBJECT = 86
    FORM = 87
    LINK = 88
    INPUT_METHOD_WINDOW = 89
    TABLE_ROW = 90
    TREE_ITEM = 91
    DOCUMENT_SPREADSHEET = 92
    DOCUMENT_PRESENTATION = 93
    DOCUMENT_TEXT = 94
    DOCUMENT_WEB = 95
    DOCUMENT_EMAIL = 96
    COMMENT = 97
    LIST_BOX = 98
    GROUPING = 99
    IMAGE_MAP = 100
    NOTIFICATION = 101
    INFO_BAR = 102
    LEVEL_BAR = 103
    TITLE_BAR = 104
    BLOCK_QUOTE = 105
    AUDIO = 106
    VIDEO = 107
    DEFINITION = 108
    ARTICLE = 109
    LANDMARK = 110
    LOG = 111
    MARQUEE = 112
    MATH = 113
    RATING = 114
    TIMER = 115
    STATIC = 116
    MATH_FRACTION = 117
    MATH_ROOT = 118
    SUBSCRIPT = 119
    SUPERSCRIPT = 120
    DESCRIPTION_LIST = 121
    DESCRIPTION_TERM = 122
    DESCRIPTION_VALUE = 123
    FOOTNOTE = 124
    CONTENT_DELETION = 125
    CONTENT_INSERTION = 126
    MARK = 127
    SUGGESTION = 128
    PUSH_BUTTON_MENU = 129

    @classmethod
    def from_value(cls, value: object) -> Role:
        """Map a wire value to a Role; anything unrecognised becomes UNKNOWN."""
        try:
            return cls(int(value))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return cls.UNKNOWN

    def __str__(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))
