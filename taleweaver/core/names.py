from __future__ import annotations

import re
from collections.abc import Sequence

from taleweaver.models import Character


# Narration prompts ask for bold names (**Name**); a trailing possessive is tolerated.
BOLD_NAME_RE = re.compile(r"\*\*(.+?)(?:'s?)?\*\*")


def bold_names(text: str) -> list[str]:
    return [m.group(1) for m in BOLD_NAME_RE.finditer(text)]


def matches_character(name: str, character: Character) -> bool:
    """Exact, case-sensitive match on the full name or the first name."""

    return character.name == name or character.name.split(" ")[0] == name


def extract_referenced_characters(text: str, characters: Sequence[Character]) -> list[int]:
    """Indices of known characters mentioned in bold, in order of first mention.

    Each bold name resolves to the first character it matches.
    """

    found: list[int] = []
    for name in bold_names(text):
        for index, character in enumerate(characters):
            if matches_character(name, character):
                if index not in found:
                    found.append(index)
                break
    return found
