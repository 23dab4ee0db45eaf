"""
Structured representations of a storybook, its pages, and the records kept alongside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Sequence

from .lifecycle import BookStatus


@dataclass(frozen=True)
class ObjectRef:
    """Durable reference to an object held in an object store."""

    bucket: str
    path: str

    @property
    def uri(self) -> str:
        return f"store://{self.bucket}/{self.path}"

    def as_dict(self) -> dict[str, str]:
        return {"bucket": self.bucket, "path": self.path}

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ObjectRef | None":
        if not payload:
            return None
        try:
            return cls(bucket=str(payload["bucket"]), path=str(payload["path"]))
        except KeyError as exc:
            raise ValueError(f"Invalid object reference: {payload!r}") from exc


class PageRole(str, Enum):
    PHOTO = "photo"
    STORY = "story"
    EPILOGUE = "epilogue"


class AnchorKind(str, Enum):
    LEAD = "lead"
    COMPANION = "companion"

    @property
    def page_key(self) -> str:
        return f"{self.value}_reference"


def page_key_for(page_number: int) -> str:
    return f"page_{page_number}"


@dataclass(frozen=True)
class StoryPage:
    """A raw page of story content as produced by the text model."""

    text: str
    prompt: str

    def as_dict(self) -> dict[str, str]:
        return {"text": self.text, "prompt": self.prompt}


@dataclass(frozen=True)
class Page:
    """One page of the master page list."""

    page_number: int
    role: PageRole
    text: str
    prompt: str
    image_ref: ObjectRef | None = None
    version: int = 0

    @property
    def key(self) -> str:
        return page_key_for(self.page_number)

    @property
    def is_painted(self) -> bool:
        return self.image_ref is not None

    def with_image(self, ref: ObjectRef) -> "Page":
        return replace(self, image_ref=ref, version=self.version + 1)

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "role": self.role.value,
            "text": self.text,
            "prompt": self.prompt,
            "image_ref": self.image_ref.as_dict() if self.image_ref else None,
            "version": self.version,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Page":
        try:
            return cls(
                page_number=int(payload["page_number"]),
                role=PageRole(payload.get("role", PageRole.STORY.value)),
                text=str(payload.get("text", "")),
                prompt=str(payload.get("prompt", "")),
                image_ref=ObjectRef.from_mapping(payload.get("image_ref")),
                version=int(payload.get("version", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid page entry: {payload!r}") from exc


@dataclass
class Book:
    """
    Aggregate root for one storybook.

    ``pages`` is the master page list produced by
    :class:`storytime.book.page_set.PageSetBuilder`; it stays empty until the
    first generation run.
    """

    book_id: str
    lead_name: str
    companion: str
    setting: str
    story_pages: list[StoryPage]
    status: BookStatus = BookStatus.DRAFT
    style: str = "storybook illustration"
    lead_description: str = ""
    companion_description: str = ""
    closing_prompt: str = ""
    title: str = ""
    photo_ref: ObjectRef | None = None
    pages: list[Page] = field(default_factory=list)
    anchors: dict[AnchorKind, ObjectRef] = field(default_factory=dict)
    degraded_anchors: list[AnchorKind] = field(default_factory=list)
    final_page_count: int | None = None
    pdf_ref: ObjectRef | None = None
    vendor_order_id: str | None = None
    vendor_order_status: str | None = None
    error: str | None = None

    def page(self, page_number: int) -> Page:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        raise KeyError(f"Book {self.book_id} has no page {page_number}.")

    @property
    def painted_count(self) -> int:
        return sum(1 for page in self.pages if page.is_painted)

    @property
    def unpainted_pages(self) -> list[Page]:
        return [page for page in self.pages if not page.is_painted]

    def to_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "status": self.status.value,
            "title": self.title,
            "lead_name": self.lead_name,
            "companion": self.companion,
            "setting": self.setting,
            "style": self.style,
            "lead_description": self.lead_description,
            "companion_description": self.companion_description,
            "closing_prompt": self.closing_prompt,
            "photo_ref": self.photo_ref.as_dict() if self.photo_ref else None,
            "story_pages": [page.as_dict() for page in self.story_pages],
            "pages": [page.as_dict() for page in self.pages],
            "anchors": {kind.value: ref.as_dict() for kind, ref in self.anchors.items()},
            "degraded_anchors": [kind.value for kind in self.degraded_anchors],
            "final_page_count": self.final_page_count,
            "pdf_ref": self.pdf_ref.as_dict() if self.pdf_ref else None,
            "vendor_order_id": self.vendor_order_id,
            "vendor_order_status": self.vendor_order_status,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Book":
        for required in ("book_id", "lead_name", "companion", "setting"):
            if required not in payload:
                raise ValueError(f"Book payload must include '{required}'.")

        story_pages = parse_story_pages(payload.get("story_pages") or [])
        anchors_payload = payload.get("anchors") or {}
        anchors: dict[AnchorKind, ObjectRef] = {}
        for kind_name, ref_payload in anchors_payload.items():
            ref = ObjectRef.from_mapping(ref_payload)
            if ref is not None:
                anchors[AnchorKind(kind_name)] = ref

        final_page_count = payload.get("final_page_count")
        return cls(
            book_id=str(payload["book_id"]),
            status=BookStatus(payload.get("status", BookStatus.DRAFT.value)),
            title=str(payload.get("title") or ""),
            lead_name=str(payload["lead_name"]).strip(),
            companion=str(payload["companion"]).strip(),
            setting=str(payload["setting"]).strip(),
            style=str(payload.get("style") or "storybook illustration"),
            lead_description=str(payload.get("lead_description") or ""),
            companion_description=str(payload.get("companion_description") or ""),
            closing_prompt=str(payload.get("closing_prompt") or ""),
            photo_ref=ObjectRef.from_mapping(payload.get("photo_ref")),
            story_pages=story_pages,
            pages=[Page.from_mapping(entry) for entry in payload.get("pages") or []],
            anchors=anchors,
            degraded_anchors=[AnchorKind(kind) for kind in payload.get("degraded_anchors") or []],
            final_page_count=int(final_page_count) if final_page_count is not None else None,
            pdf_ref=ObjectRef.from_mapping(payload.get("pdf_ref")),
            vendor_order_id=payload.get("vendor_order_id"),
            vendor_order_status=payload.get("vendor_order_status"),
            error=payload.get("error"),
        )


def parse_story_pages(entries: Sequence[Any]) -> list[StoryPage]:
    pages: list[StoryPage] = []
    for entry in entries:
        if isinstance(entry, StoryPage):
            pages.append(entry)
            continue
        try:
            text = str(entry["text"]).strip()
            prompt = str(entry.get("prompt") or "").strip()
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Invalid story page payload: {entry!r}") from exc
        pages.append(StoryPage(text=text, prompt=prompt or text))
    return pages


@dataclass(frozen=True)
class ImageRecord:
    """Denormalized audit entry for every stored illustration."""

    book_id: str
    page_key: str
    object_ref: ObjectRef
    source: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "page_key": self.page_key,
            "object_ref": self.object_ref.as_dict(),
            "source": self.source,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ImageRecord":
        ref = ObjectRef.from_mapping(payload.get("object_ref"))
        if ref is None:
            raise ValueError(f"Image record is missing its object reference: {payload!r}")
        return cls(
            book_id=str(payload["book_id"]),
            page_key=str(payload["page_key"]),
            object_ref=ref,
            source=str(payload.get("source", "")),
        )


@dataclass(frozen=True)
class ShippingAddress:
    email: str
    first_name: str = ""
    last_name: str = ""
    address_line1: str = ""
    address_line2: str = ""
    city: str = ""
    post_code: str = ""
    state: str = ""
    country: str = "AU"
    phone: str = ""

    def as_dict(self) -> dict[str, str]:
        return {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "post_code": self.post_code,
            "state": self.state,
            "country": self.country,
            "phone": self.phone,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ShippingAddress":
        if not payload.get("email"):
            raise ValueError("Shipping address must include an email.")
        known = cls.__dataclass_fields__.keys()
        return cls(**{key: str(value) for key, value in payload.items() if key in known and value is not None})


@dataclass(frozen=True)
class Order:
    """A paid order, created outside this package on payment confirmation."""

    book_id: str
    shipping_address: ShippingAddress
    amount: int
    currency: str = "AUD"
    status: str = "paid"
    tracking_url: str | None = None
    reference_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "shipping_address": self.shipping_address.as_dict(),
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "tracking_url": self.tracking_url,
            "reference_id": self.reference_id,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Order":
        try:
            return cls(
                book_id=str(payload["book_id"]),
                shipping_address=ShippingAddress.from_mapping(payload["shipping_address"]),
                amount=int(payload.get("amount", 0)),
                currency=str(payload.get("currency") or "AUD"),
                status=str(payload.get("status") or "paid"),
                tracking_url=payload.get("tracking_url"),
                reference_id=payload.get("reference_id"),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid order payload: {payload!r}") from exc
