from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .models import DisplayGroup, ParsedSection


class Bucket(str, Enum):
    MAIN = "main"
    HIDDEN = "hidden"
    EXPERT = "expert"
    PATIENT = "patient"
    CONFIDENCE = "confidence"
    CONCLUSION = "conclusion"
    OTHERS = "others"


SINGLE_SLOT_BUCKETS = {Bucket.EXPERT, Bucket.PATIENT, Bucket.CONFIDENCE, Bucket.CONCLUSION}

# Renaming a heading in the answer format without updating this table routes it to OTHERS.
SECTION_BUCKETS: dict[str, Bucket] = {
    "Key Summary": Bucket.MAIN,
    "Clinical Takeaway": Bucket.MAIN,
    "Research Evidence": Bucket.MAIN,
    "Clinical Decision Context": Bucket.MAIN,
    "When Immediate Medical Attention Is Required": Bucket.MAIN,
    "Limitations & Uncertainty": Bucket.HIDDEN,
    "Sources Used": Bucket.HIDDEN,
    "Guideline Concordance Color Rating": Bucket.HIDDEN,
    "Expert Opinion": Bucket.EXPERT,
    "Patient Perspectives": Bucket.PATIENT,
    "Confidence Meter": Bucket.CONFIDENCE,
    "Conclusion": Bucket.CONCLUSION,
}


def assign_bucket(title: str) -> Bucket:
    return SECTION_BUCKETS.get(title, Bucket.OTHERS)


def group_sections(sections: Iterable[ParsedSection]) -> DisplayGroup:
    group = DisplayGroup()
    for section in sections:
        bucket = assign_bucket(section.title)
        if bucket in SINGLE_SLOT_BUCKETS:
            if getattr(group, bucket.value) is None:
                setattr(group, bucket.value, section)
            else:
                # Slot already taken by an earlier section with the same heading.
                group.others.append(section)
            continue
        getattr(group, bucket.value).append(section)
    return group


@dataclass
class SectionLayout:
    group: DisplayGroup = field(default_factory=DisplayGroup)
    expanded: bool = False

    @classmethod
    def from_sections(cls, sections: Iterable[ParsedSection]) -> "SectionLayout":
        return cls(group=group_sections(sections))

    def toggle(self) -> bool:
        self.expanded = not self.expanded
        return self.expanded

    @property
    def has_hidden(self) -> bool:
        return bool(self.group.hidden)

    def visible_sections(self) -> list[ParsedSection]:
        group = self.group
        visible = list(group.main)
        if self.expanded:
            visible.extend(group.hidden)
        for slot in (group.expert, group.patient, group.confidence, group.conclusion):
            if slot is not None:
                visible.append(slot)
        visible.extend(group.others)
        return visible
