#!/usr/bin/env python3
"""Tests for the Markdown-subset block renderer."""

from repair_assistant.renderer import (
    Blank,
    Header2,
    Header3,
    ListItem,
    Paragraph,
    Segment,
    render_blocks,
    split_emphasis,
)


def test_reference_document():
    """Test rendering of a document using every block type."""
    blocks = render_blocks("## Title\n- **A**: b\n\nplain **bold** text")

    assert blocks == [
        Header2(text="Title"),
        ListItem(label="A", body="b"),
        Blank(),
        Paragraph(
            segments=[
                Segment(text="plain ", emphasized=False),
                Segment(text="bold", emphasized=True),
                Segment(text=" text", emphasized=False),
            ]
        ),
    ]


def test_one_block_per_line():
    """Test that every input line yields exactly one block."""
    text = "## A\n### B\n* c\n\n- **d**: e\nf\n"

    assert len(render_blocks(text)) == len(text.split("\n"))


def test_header3_is_not_mistaken_for_header2():
    """Test that level-3 headers are not read as level-2."""
    assert render_blocks("### Tools Needed") == [Header3(text="Tools Needed")]


def test_star_bullets_and_indented_bullets():
    """Test star bullets and indented plain bullets."""
    assert render_blocks("* **Safety**: unplug first\n  - check fuse") == [
        ListItem(label="Safety", body="unplug first"),
        ListItem(body="check fuse"),
    ]


def test_bold_bullet_without_label_terminator_is_plain_bullet():
    """Test a bold-led bullet that lacks the label terminator."""
    (item,) = render_blocks("- **Warning** mains voltage inside")

    assert item == ListItem(body="**Warning** mains voltage inside")
    assert item.segments == [
        Segment(text="Warning", emphasized=True),
        Segment(text=" mains voltage inside"),
    ]


def test_whitespace_only_line_is_blank():
    """Test that whitespace-only lines render as blanks."""
    assert render_blocks("   \r") == [Blank()]


def test_crlf_line_endings():
    """Test input with CRLF line endings."""
    assert render_blocks("## Diagnosis\r\nok") == [
        Header2(text="Diagnosis"),
        Paragraph(segments=[Segment(text="ok")]),
    ]


def test_leading_emphasis_drops_empty_segment():
    """Test that leading emphasis produces no empty segment."""
    assert split_emphasis("**Note:** check C12") == [
        Segment(text="Note:", emphasized=True),
        Segment(text=" check C12"),
    ]


def test_unbalanced_marker_stays_literal():
    """Test that an unbalanced emphasis marker is kept as text."""
    assert split_emphasis("use **bold** and **unfinished") == [
        Segment(text="use "),
        Segment(text="bold", emphasized=True),
        Segment(text=" and **unfinished"),
    ]


def test_links_and_code_are_not_interpreted():
    """Test that links and inline code pass through untouched."""
    assert render_blocks("see [datasheet](http://x) `code`") == [
        Paragraph(segments=[Segment(text="see [datasheet](http://x) `code`")])
    ]
