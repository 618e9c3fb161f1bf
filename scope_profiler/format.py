"""Glyph sets used to draw the report tree.

Each preset is a `FormattingOptions` instance. Reference print using
`DEBUGGING`, which names every glyph position:

    >,,,, main                        - 100.0%, 300.00 ms/loop, 2 samples
       +,,,, physics simulation       -  66.7%, 200.00 ms/loop, 2 samples
       |  +.... moving things         -  50.0%, 100.00 ms/loop, 2 samples
       |  -.... resolving collisions  -  50.0%, 100.00 ms/loop, 2 samples
       -.... rendering                -  33.3%, 100.00 ms/loop, 2 samples

    starting_branch       ">"
    continuing_branch     "|"
    branching_branch      "+"
    turning_branch        "-"
    ending_branch         "...."
    turning_ending_branch ",,,,"
"""

from pydantic import BaseModel, ConfigDict, Field

from .errors import UnknownFormatError


class FormattingOptions(BaseModel):
    """The six glyph strings used to draw the report tree."""

    model_config = ConfigDict(frozen=True)

    starting_branch: str = Field(min_length=1, description="First column of a top-level row")
    continuing_branch: str = Field(
        min_length=1, description="Vertical connector below a non-last ancestor"
    )
    branching_branch: str = Field(min_length=1, description="Row that has later siblings")
    turning_branch: str = Field(min_length=1, description="Last row among its siblings")
    ending_branch: str = Field(min_length=1, description="Lead-in for a leaf name")
    turning_ending_branch: str = Field(
        min_length=1, description="Lead-in for a name that has children"
    )


# Default format.
#
#   ╶──┬╼ main                        - 100.0%, 300.00 ms/loop, 2 samples
#      ├──┬╼ physics simulation       -  66.7%, 200.00 ms/loop, 2 samples
#      │  ├───╼ moving things         -  50.0%, 100.00 ms/loop, 2 samples
#      │  └───╼ resolving collisions  -  50.0%, 100.00 ms/loop, 2 samples
#      └───╼ rendering                -  33.3%, 100.00 ms/loop, 2 samples
STREAMLINED = FormattingOptions(
    starting_branch="╶",
    continuing_branch="│",
    branching_branch="├",
    turning_branch="└",
    ending_branch="───╼",
    turning_ending_branch="──┬╼",
)

# Like STREAMLINED with rounded corners.
STREAMLINED_ROUNDED = FormattingOptions(
    starting_branch="╶",
    continuing_branch="│",
    branching_branch="├",
    turning_branch="╰",
    ending_branch="───╼",
    turning_ending_branch="──┬╼",
)

# Plain ASCII for terminals with small charsets.
COMPATIBLE = FormattingOptions(
    starting_branch="-",
    continuing_branch="|",
    branching_branch="|",
    turning_branch="\\",
    ending_branch="----",
    turning_ending_branch="----",
)

DOUBLED = FormattingOptions(
    starting_branch="═",
    continuing_branch="║",
    branching_branch="╠",
    turning_branch="╚",
    ending_branch="════",
    turning_ending_branch="══╦═",
)

# Every glyph distinct, for checking the tree layout itself.
DEBUGGING = FormattingOptions(
    starting_branch=">",
    continuing_branch="|",
    branching_branch="+",
    turning_branch="-",
    ending_branch="....",
    turning_ending_branch=",,,,",
)

PRESETS: dict[str, FormattingOptions] = {
    "streamlined": STREAMLINED,
    "rounded": STREAMLINED_ROUNDED,
    "compatible": COMPATIBLE,
    "doubled": DOUBLED,
    "debugging": DEBUGGING,
}


def get_format(name: str) -> FormattingOptions:
    """Look up a preset by name (case-insensitive).

    Raises:
        UnknownFormatError: If no preset has that name.
    """
    try:
        return PRESETS[name.lower()]
    except KeyError:
        raise UnknownFormatError(name, sorted(PRESETS)) from None
