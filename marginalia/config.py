"""Shared configuration for marginalia."""

from __future__ import annotations

from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel, field_validator

# Literal context captured on each side of a selection
CONTEXT_LENGTH = 64

# Fingerprint caps
HEADING_MAX_LENGTH = 120
SURROUNDING_RADIUS = 200
SURROUNDING_MAX_LENGTH = 400
HEADING_WALK_STEPS = 20
PATH_MAX_DEPTH = 4

# Layer 1 context windows (exact tail vs. "contains" checks)
CONTEXT_EXACT_WINDOW = 32
CONTEXT_LOOSE_WINDOW = 16

# Layer 2
FUZZY_WINDOW_FACTOR = 1.3
FUZZY_THRESHOLD = 0.72

# Layer 3
STRUCTURAL_THRESHOLD = 0.5
STRUCTURAL_TEXT_LIMIT = 500
STRUCTURAL_PROBE_LENGTH = 20

# Layer 4
POSITIONAL_VIEWPORT_FACTOR = 1.5

# Combined normalized length above which edit distance falls back to set similarity
EDIT_DISTANCE_GUARD = 300

# Key of the annotation collection in the key-value store
COLLECTION_KEY = "marginalia_annotations"

# Class/id prefix marking subtrees owned by the presentation layer
OWNED_UI_PREFIX = "marginalia-"

# HTTP timeout in seconds when fetching pages
HTTP_TIMEOUT = 10


def validate_positive(name: str, value: float) -> None:
    """Validate that a numeric setting is strictly positive.

    Args:
        name: Setting name used in the error message
        value: The value to check

    Raises:
        ValueError: If the value is zero or negative
    """
    if value <= 0:
        raise ValueError(f"Invalid {name}: {value!r}. Expected a positive number")


def validate_scroll_percentage(value: float | None) -> None:
    """Validate a captured scroll percentage.

    Raises:
        ValueError: If the value is outside [0, 1]
    """
    if value is not None and not 0.0 <= value <= 1.0:
        raise ValueError(
            f"Invalid scroll percentage: {value!r}. Expected a value between 0 and 1"
        )


class Settings(BaseModel):
    """
    Runtime settings for capture, layout and resolution.

    Attributes:
        owned_ui_prefix: Id/class prefix of presentation-owned subtrees
        viewport_width: Viewport width in pixels used by the flow layout
        viewport_height: Viewport height in pixels (Layer 4 acceptance radius)
        line_height: Height of one line of text in pixels
        char_width: Average character width in pixels
        block_gap: Vertical gap inserted after every block element
        max_fuzzy_windows: Window comparisons allowed per resolution in Layer 2
        max_structural_blocks: Block candidates scored per resolution in Layer 3
        store_path: Default location of the YAML annotation store
    """

    owned_ui_prefix: str = OWNED_UI_PREFIX
    viewport_width: float = 1280.0
    viewport_height: float = 800.0
    line_height: float = 24.0
    char_width: float = 8.0
    block_gap: float = 16.0
    max_fuzzy_windows: int = 200_000
    max_structural_blocks: int = 5_000
    store_path: Path = Path("annotations.yaml")

    @field_validator(
        "viewport_width",
        "viewport_height",
        "line_height",
        "char_width",
        "max_fuzzy_windows",
        "max_structural_blocks",
    )
    @classmethod
    def _must_be_positive(cls, value, info):
        validate_positive(info.field_name, value)
        return value

    @field_validator("block_gap")
    @classmethod
    def _gap_not_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"Invalid block_gap: {value!r}. Expected zero or more")
        return value

    @property
    def chars_per_line(self) -> int:
        """Number of characters that fit on one line of the viewport."""
        return max(1, int(self.viewport_width // self.char_width))

    @classmethod
    def from_yaml(cls, yaml_text: str) -> Self:
        """
        Load settings from YAML text.

        Example:
            settings = Settings.from_yaml('''
                viewport_height: 900
                owned_ui_prefix: lens-
            ''')
        """
        try:
            data = yaml.safe_load(yaml_text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid settings YAML: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Settings YAML must be a mapping")
        return cls(**data)

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> Self:
        """Load settings from a YAML file."""
        with open(path, encoding="utf-8") as f:
            return cls.from_yaml(f.read())
