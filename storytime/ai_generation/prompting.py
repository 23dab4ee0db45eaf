"""
Prompt construction for page illustrations and reference portraits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from storytime.book.models import AnchorKind, Book, Page

NEGATIVE_PROMPT = (
    "distorted features, scary, dark themes, blurry, low resolution, missing limbs, "
    "extra fingers, realistic, photograph, watermark, text, logo"
)

DEFAULT_STYLE = "children's book illustration"

# Pages that intentionally show only one of the two characters.
_SETTING_PAGE = 2
_COMPANION_PAGE = 3


@dataclass(frozen=True)
class StorybookPrompt:
    """Container for the positive and negative prompts passed to the image model."""

    positive: str
    negative: str = NEGATIVE_PROMPT
    references: tuple[AnchorKind, ...] = ()


def build_anchor_prompt(
    book: Book,
    kind: AnchorKind,
    *,
    identity_notes: str | Sequence[str] | None = None,
) -> StorybookPrompt:
    """
    Build the prompt for a standalone reference portrait.

    The portrait is neutral and front-facing so later pages can reuse it as a
    visual consistency reference.
    """
    if kind is AnchorKind.LEAD:
        subject = book.lead_name
        description = book.lead_description
    else:
        subject = book.companion
        description = book.companion_description

    if not subject or not subject.strip():
        raise ValueError(f"The {kind.value} character needs a name to paint its portrait.")

    style = book.style or DEFAULT_STYLE
    positive = (
        f"{description.strip() + ' ' if description.strip() else ''}"
        f"A professional storybook illustration of {subject} in {style}. "
        f"This is a reference portrait of the {kind.value} character: front view, neutral pose, "
        "neutral expression, centered composition, plain light background."
    )

    sections: list[str] = []
    identity_lines = _normalize_note_input(identity_notes)
    if identity_lines:
        identity_lines.append("Preserve these physical traits exactly; ignore clothing in the photo.")
        sections.append(_format_bullet_section("IDENTITY SNAPSHOT", identity_lines))
    sections.append(_format_bullet_section("AVOID", [NEGATIVE_PROMPT]))

    return StorybookPrompt(
        positive=positive + "\n\n" + "\n\n".join(sections),
        references=(AnchorKind.LEAD,) if kind is AnchorKind.LEAD and book.photo_ref else (),
    )


def build_page_prompt(
    book: Book,
    page: Page,
    *,
    available_anchors: Mapping[AnchorKind, object] | Sequence[AnchorKind],
) -> StorybookPrompt:
    """
    Build the prompt for one page illustration.

    Only anchors present in ``available_anchors`` are referenced, in the order
    they will be attached to the request. Missing anchors are left out of the
    wording entirely.
    """
    if not page.prompt.strip():
        raise ValueError(f"Page {page.page_number} has no scene prompt.")

    if page.page_number == _SETTING_PAGE:
        wanted: tuple[AnchorKind, ...] = (AnchorKind.LEAD,)
    elif page.page_number == _COMPANION_PAGE:
        wanted = (AnchorKind.COMPANION,)
    else:
        wanted = (AnchorKind.LEAD, AnchorKind.COMPANION)
    references = tuple(kind for kind in wanted if kind in available_anchors)

    style = book.style or DEFAULT_STYLE
    bible = " ".join(
        text.strip() for text in (book.lead_description, book.companion_description) if text.strip()
    )
    positive = f"Wholesome children's book illustration. Style: {style}."
    if bible:
        positive += f" {bible}"

    character_lines = _character_instructions(book, page, references)
    positive += "\n\n" + _format_bullet_section("CHARACTERS", character_lines)
    positive += "\n\n" + _format_bullet_section("SCENE", [page.prompt])
    positive += "\n\n" + _format_bullet_section("AVOID", [NEGATIVE_PROMPT])

    return StorybookPrompt(positive=positive, references=references)


def _character_instructions(
    book: Book,
    page: Page,
    references: Sequence[AnchorKind],
) -> list[str]:
    names = {AnchorKind.LEAD: f"the child hero {book.lead_name}", AnchorKind.COMPANION: f"their friend {book.companion}"}
    lines = [
        f"Ref {index} is {names[kind]}; match that appearance exactly for visual consistency."
        for index, kind in enumerate(references, start=1)
    ]
    if page.page_number == _SETTING_PAGE:
        lines.append(f"Only {book.lead_name} appears in this scene; no companion yet.")
    elif page.page_number == _COMPANION_PAGE:
        lines.append(f"Only {book.companion} appears in this scene; no child hero yet.")
    else:
        lines.append(f"Depict {book.lead_name} and {book.companion} interacting naturally.")
    return lines


def _normalize_note_input(
    value: str | Sequence[str] | Mapping[str, str] | None,
) -> list[str]:
    if value is None:
        return []

    if isinstance(value, Mapping):
        items = [f"{key}: {details}" for key, details in value.items()]
    elif isinstance(value, str):
        items = [value]
    else:
        items = [str(item) for item in value]

    lines: list[str] = []
    for item in items:
        for raw in item.replace("\r", "\n").split("\n"):
            cleaned = raw.strip(" \t-•")
            if cleaned:
                lines.append(cleaned)
    return lines


def _format_bullet_section(title: str, lines: Sequence[str]) -> str:
    bullet_block = "\n".join(f"- {line}" for line in lines if line.strip())
    return f"{title}\n{bullet_block}"
