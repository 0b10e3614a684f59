"""Regular expressions shared by the structure detector and the chunker.

The chunker re-scans chunk text with the same lightweight patterns the
detector uses to find tables, so both import them from here rather than
keeping two copies that can drift apart.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Dice / roll-range rows
# ---------------------------------------------------------------------------

# A roll row starts with a single value ("3"), a range ("1-2", "11–16") and an
# optional ":", "." or ")" before the result phrase.  The result may start with
# a digit ("2 2 gold crowns") but needs a letter somewhere, so "12 34 56"
# number soup is not taken for a table.
ROLL_ROW = re.compile(
    r"^\s*(?P<low>\d{1,2})(?:\s*[-–—]\s*(?P<high>\d{1,2}))?"
    r"\s*[:.)]?\s+(?P<result>(?=.*[A-Za-z])\S.*?)\s*$"
)

# Context that announces a dice table: "Roll on the Injury Table", "Roll a D6".
ROLL_CONTEXT = re.compile(r"\broll(?:s|ed|ing)?\b|\b\d*d(?:3|6|8|10|12|20|66|100)\b", re.IGNORECASE)

# Pulls "Injury Table" out of "Roll on the Injury Table:".
ROLL_TABLE_TITLE = re.compile(
    r"\broll\b(?:\s+(?:a|once|twice|\w*d\d+))*\s+on\s+(?:the\s+)?(?P<title>[\w' -]+?\btable)\b",
    re.IGNORECASE,
)

DICE_NOTATION = re.compile(r"\b\d*[dD]\d+(?:\+\d+)?\b")
ROLL_RANGE_INLINE = re.compile(r"\b[1-6]\s*[-–]\s*[1-6]\b|\b(?:D6|d6|D66|d66)\b")

# ---------------------------------------------------------------------------
# Pipe tables
# ---------------------------------------------------------------------------

PIPE_LINE = re.compile(r"^\s*\|.*\|\s*$")
PIPE_SEPARATOR = re.compile(r"^\|\s*:?-+:?\s*(\|\s*:?-+:?\s*)+\|$")

# ---------------------------------------------------------------------------
# Whitespace-aligned tables
# ---------------------------------------------------------------------------

# Column gap: a tab or two-plus spaces between cells.
COLUMN_GAP = re.compile(r"\t+| {2,}")

# ---------------------------------------------------------------------------
# Headings
# ---------------------------------------------------------------------------

CHAPTER_HEADING = re.compile(
    r"^(?:[Cc]hapter|CHAPTER|[Pp]art|PART|[Bb]ook|BOOK|[Aa]ppendix|APPENDIX)"
    r"\s+(?:[IVXLCDM]+|\d+|[A-Z])\b[\s:.\-–]*(?P<rest>.*)$"
)
MARKDOWN_HEADING = re.compile(r"^(?P<hashes>#{1,6})\s+(?P<title>\S.*?)\s*#*\s*$")
NUMBERED_HEADING = re.compile(r"^(?P<number>\d{1,2}(?:\.\d{1,2}){0,3})\.?\s+(?P<title>[A-Z][^.!?]*)$")
ALL_CAPS_HEADING = re.compile(r"^[A-Z0-9][A-Z0-9 '&:,()\-–/]{2,}$")

# ---------------------------------------------------------------------------
# Lists and domain vocabulary
# ---------------------------------------------------------------------------

BULLET_LINE = re.compile(r"^\s*[-•*]\s")
NUMBERED_LINE = re.compile(r"^\s*\d+[.)]\s")
ALIGNED_NUMBER_LINE = re.compile(r"^\s*\d+\.?\s")

EQUIPMENT_TERMS = re.compile(
    r"\b(?:weapons?|armou?r|equipment|gear|items?|shields?|cost|price|gold|crowns|credits)\b",
    re.IGNORECASE,
)
SKILL_TERMS = re.compile(
    r"\b(?:skills?|abilit(?:y|ies)|talents?|traits?|advances?|spells?)\b",
    re.IGNORECASE,
)
