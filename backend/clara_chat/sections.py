"""
Split assistant output into named clinical sections.

A line opens a section when, after dropping any leading non-letter prefix
(numbering, bullets, markdown emphasis, emoji), it starts with a known key and
whatever trails the key is decoration only. Anything else is body text of the
current section. Text before the first heading lands in a "Key Summary"
fallback section.
"""

from __future__ import annotations

import string

from .models import ParsedSection

FALLBACK_TITLE = "Key Summary"
FALLBACK_ORIGINAL_TITLE = "Summary"

CLINICAL_SECTION_KEYS: tuple[str, ...] = (
    "Key Summary",
    "Clinical Takeaway",
    "Research Evidence",
    "Expert Opinion",
    "Patient Perspectives",
    "Clinical Decision Context",
    "Limitations & Uncertainty",
    "When Immediate Medical Attention Is Required",
    "Sources Used",
    "Guideline Concordance Color Rating",
    "Confidence Meter",
    "Conclusion",
)

# Headings of the patient-education answer format.
EDUCATION_SECTION_KEYS: tuple[str, ...] = (
    "Key Summary",
    "Definition",
    "Evidence-Based Overview",
    "Practical Considerations",
    "Limitations & Uncertainty",
    "When Immediate Medical Attention Is Required",
    "Sources Used",
    "Guideline Concordance Color Rating",
    "Confidence Meter",
    "Conclusion",
    "Next Steps",
)

_DASHES = {"-", "–", "—"}
_MARKERS = {":", "*"}

_NO_SECTION_OPEN = "no_section_open"
_SECTION_OPEN = "section_open"


def _strip_leading_non_letters(text: str) -> str:
    index = 0
    while index < len(text) and text[index] not in string.ascii_letters:
        index += 1
    return text[index:].strip()


def is_decoration_only(remainder: str) -> bool:
    """True when ``remainder`` is empty, ``:``/``*`` markers, ``(...)`` remarks or a dash remark.

    Scans right to left once. ``ok[i]`` says whether ``remainder[i:]`` is
    decoration only; a ``(`` remark may end at any later ``)`` whose tail is
    itself decoration, which ``closes[i]`` tracks for every suffix.
    """
    length = len(remainder)
    ok = [False] * (length + 1)
    ok[length] = True
    closes = [False] * (length + 1)
    next_solid = length
    for index in range(length - 1, -1, -1):
        char = remainder[index]
        if not char.isspace():
            next_solid = index
        closes[index] = closes[index + 1] or (char == ")" and ok[index + 1])
        if char in _MARKERS:
            ok[index] = ok[index + 1]
        elif next_solid == length:
            ok[index] = False
        elif remainder[next_solid] in _DASHES:
            ok[index] = True
        elif remainder[next_solid] == "(":
            ok[index] = closes[next_solid + 1]
    return ok[0]


def match_heading(line: str, section_keys: tuple[str, ...] = CLINICAL_SECTION_KEYS) -> str | None:
    cleaned = _strip_leading_non_letters(line.strip())
    if not cleaned:
        return None
    for key in section_keys:
        if cleaned[: len(key)].lower() != key.lower():
            continue
        if is_decoration_only(cleaned[len(key) :].strip()):
            return key
    return None


class SectionScanner:
    def __init__(self, section_keys: tuple[str, ...] = CLINICAL_SECTION_KEYS) -> None:
        self.section_keys = section_keys
        self.state = _NO_SECTION_OPEN
        self._sections: list[ParsedSection] = []
        self._title = ""
        self._original_title = ""
        self._lines: list[str] = []

    def _open(self, title: str, original_title: str, lines: list[str]) -> None:
        self._title = title
        self._original_title = original_title
        self._lines = lines
        self.state = _SECTION_OPEN

    def _close(self) -> None:
        if self.state != _SECTION_OPEN:
            return
        self._sections.append(
            ParsedSection(
                title=self._title,
                original_title=self._original_title,
                content="\n".join(self._lines).strip(),
            )
        )
        self._lines = []
        self.state = _NO_SECTION_OPEN

    def feed_line(self, line: str) -> None:
        trimmed = line.strip()
        if self.state == _NO_SECTION_OPEN and not trimmed:
            return

        key = match_heading(trimmed, self.section_keys)
        if key is not None:
            self._close()
            self._open(key, trimmed, [])
        elif self.state == _SECTION_OPEN:
            self._lines.append(line)
        else:
            self._open(FALLBACK_TITLE, FALLBACK_ORIGINAL_TITLE, [line])

    def finish(self) -> list[ParsedSection]:
        self._close()
        return list(self._sections)


def parse_sections(
    content: str | None,
    section_keys: tuple[str, ...] = CLINICAL_SECTION_KEYS,
) -> list[ParsedSection]:
    if not content:
        return []
    scanner = SectionScanner(section_keys)
    for line in content.split("\n"):
        scanner.feed_line(line)
    return scanner.finish()
