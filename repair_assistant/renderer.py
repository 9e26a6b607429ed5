"""Minimal Markdown-subset renderer for repair reports.

The model is asked to answer with a small subset of Markdown: ``## `` and
``### `` headers, ``- `` / ``* `` bullets (optionally led by a ``**Label**:``
segment) and ``**bold**`` spans. This module turns such text into typed display
blocks, exactly one block per input line. Anything outside the subset (nested
lists, links, code) is passed through as plain paragraph text.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel

BOLD = "**"
HEADER2_PREFIX = "## "
HEADER3_PREFIX = "### "
BULLET_PREFIXES = ("* ", "- ")
BOLD_BULLET_PREFIXES = ("* **", "- **")
LABEL_TERMINATOR = "**:"


class Segment(BaseModel):
    """Run of inline text, emphasized or not."""

    text: str
    emphasized: bool = False


def split_emphasis(text: str) -> List[Segment]:
    """Split text on ``**`` markers; odd-numbered pieces are emphasized.

    Empty pieces are dropped. A trailing marker without a partner stays in the
    text as literal characters.
    """
    pieces = text.split(BOLD)
    if len(pieces) % 2 == 0:
        # merged piece lands on an even (plain) index
        pieces[-2:] = [pieces[-2] + BOLD + pieces[-1]]

    return [
        Segment(text=piece, emphasized=index % 2 == 1)
        for index, piece in enumerate(pieces)
        if piece
    ]


class Header2(BaseModel):
    kind: Literal["header2"] = "header2"
    text: str


class Header3(BaseModel):
    kind: Literal["header3"] = "header3"
    text: str


class ListItem(BaseModel):
    """Bullet line, with an optional bold label before its body."""

    kind: Literal["list_item"] = "list_item"
    label: Optional[str] = None
    body: str

    @property
    def segments(self) -> List[Segment]:
        return split_emphasis(self.body)


class Paragraph(BaseModel):
    kind: Literal["paragraph"] = "paragraph"
    segments: List[Segment]


class Blank(BaseModel):
    kind: Literal["blank"] = "blank"


Block = Union[Header2, Header3, ListItem, Paragraph, Blank]


def render_line(line: str) -> Block:
    """Map one line to its block, checking prefixes in priority order."""
    if line.startswith(HEADER2_PREFIX):
        return Header2(text=line[len(HEADER2_PREFIX):].strip())
    if line.startswith(HEADER3_PREFIX):
        return Header3(text=line[len(HEADER3_PREFIX):].strip())

    if line.startswith(BOLD_BULLET_PREFIXES):
        label, sep, body = line[len(BOLD_BULLET_PREFIXES[0]):].partition(LABEL_TERMINATOR)
        if sep:
            return ListItem(label=label.strip(), body=body.strip())

    stripped = line.strip()
    if stripped.startswith(BULLET_PREFIXES):
        return ListItem(body=stripped[2:].strip())
    if not stripped:
        return Blank()
    return Paragraph(segments=split_emphasis(line))


def render_blocks(text: str) -> List[Block]:
    """Convert report text to display blocks, one per line."""
    return [render_line(line.rstrip("\r")) for line in text.split("\n")]
