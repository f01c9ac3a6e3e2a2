"""
Front matter parsing.

A content unit may start with a YAML block fenced by ``---`` lines::

    ---
    title: About
    layout: page
    ---
    Body text...

The closing fence may also be ``...``. Text without an opening fence is
returned untouched with empty metadata.
"""

import yaml
from collections.abc import Hashable
from typing import Any, Dict, Optional, Tuple

from .errors import MalformedMetadataError

OPENING_FENCE = '---'
CLOSING_FENCES = ('---', '...')


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses mappings with repeated keys."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, Hashable) and key in seen:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping", node.start_mark,
                    f"found duplicate key {key!r}", key_node.start_mark)
            if isinstance(key, Hashable):
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def load_yaml(text: str):
    """Load YAML with the duplicate-key check."""
    return yaml.load(text, Loader=UniqueKeyLoader)


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith('\ufeff') else text


def has_front_matter(text: str) -> bool:
    """Return True if the text opens a front matter block."""
    first_line = _strip_bom(text).split('\n', 1)[0]
    return first_line.rstrip() == OPENING_FENCE


def parse_front_matter(text: str, source: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    """
    Split raw unit text into (metadata, body).

    Raises:
        MalformedMetadataError: if the block is never closed, is not valid
            YAML, is not a mapping, or repeats a key.
    """
    if not has_front_matter(text):
        return {}, text

    lines = _strip_bom(text).splitlines(keepends=True)
    end = None
    for index in range(1, len(lines)):
        if lines[index].rstrip() in CLOSING_FENCES:
            end = index
            break
    if end is None:
        raise MalformedMetadataError("front matter block is opened but never closed", source)

    block = ''.join(lines[1:end])
    body = ''.join(lines[end + 1:])

    try:
        metadata = load_yaml(block)
    except yaml.YAMLError as e:
        raise MalformedMetadataError(f"invalid front matter: {e}", source) from e

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise MalformedMetadataError(
            f"front matter must be a mapping, got {type(metadata).__name__}", source)

    return metadata, body
