from enum import Enum

# Stored as their string values (native enums disabled for easier evolution).


class PropagationMethod(str, Enum):
    # none: the tour lives on its home site only.
    # all: the tour exists on every site, with optional per-site translations.
    NONE = "none"
    ALL = "all"


class ProgressPosition(str, Enum):
    OFF = "off"
    TOP = "top"
    BOTTOM = "bottom"
    HEADER = "header"
    FOOTER = "footer"


class StepType(str, Enum):
    DEFAULT = "default"
    NAVIGATION = "navigation"


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
