"""
Wire models for the host ⇄ render surface message channel.

Every message crossing the trust boundary is validated here. Inbound
messages (surface→host) are parsed into a discriminated union keyed on
``type``; anything that fails validation is dropped by the caller. Outbound
messages (host→surface) are built from the same models and serialized with
camelCase keys.

Intents travel as plain ``domain.action`` strings. ``KnownIntent`` is the
closed set the dispatcher has a dedicated handler for; other well-formed
intents are forwarded to the remote executor.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

INTENT_RE = re.compile(r"^[a-z][a-z0-9_]*\.[a-z][a-z0-9_.]*$")

DEFAULT_MAX_MESSAGE_BYTES = 256 * 1024


class ProtocolError(Exception):
    """Raised when a raw message cannot be decoded into a known message."""


class KnownIntent(str, Enum):
    """Intents with a dedicated handler in the dispatcher registry."""

    # Navigation (local)
    NAV_GOTO = "nav.goto"
    NAV_BACK = "nav.back"
    NAV_ANCHOR = "nav.anchor"

    # Booking scroll (surface command)
    BOOKING_SCROLL = "booking.scroll"
    BOOKING_OPEN = "booking.open"

    # Demo (external reference)
    DEMO_REQUEST = "demo.request"
    DEMO_WATCH = "demo.watch"

    # Lead capture / forms (remote)
    BOOKING_CREATE = "booking.create"
    CALENDAR_BOOK = "calendar.book"
    CONSULTATION_BOOK = "consultation.book"
    CONTACT_SUBMIT = "contact.submit"
    SALES_CONTACT = "sales.contact"
    NEWSLETTER_SUBSCRIBE = "newsletter.subscribe"
    QUOTE_REQUEST = "quote.request"
    LEAD_CAPTURE = "lead.capture"
    JOIN_WAITLIST = "join.waitlist"
    BETA_APPLY = "beta.apply"
    FORM_SUBMIT = "form.submit"

    # Auth & trials (remote)
    AUTH_SIGNIN = "auth.signin"
    AUTH_SIGNUP = "auth.signup"
    AUTH_SIGNOUT = "auth.signout"
    TRIAL_START = "trial.start"

    # Commerce (remote)
    CART_ADD = "cart.add"
    CART_VIEW = "cart.view"
    CART_CHECKOUT = "cart.checkout"
    CHECKOUT_START = "checkout.start"
    PAY_CHECKOUT = "pay.checkout"
    WISHLIST_ADD = "wishlist.add"
    ORDER_ONLINE = "order.online"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class WireModel(BaseModel):
    """Base for all wire messages: camelCase on the wire, extras ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


RequestId = Annotated[str, Field(min_length=1, max_length=128)]


# ---------------------------------------------------------------------------
# Surface → host
# ---------------------------------------------------------------------------


class IntentTrigger(WireModel):
    type: Literal["INTENT_TRIGGER"]
    intent: str = Field(pattern=INTENT_RE.pattern, max_length=128)
    payload: dict[str, Any] = Field(default_factory=dict)
    request_id: RequestId


class IntentCommandResult(WireModel):
    type: Literal["INTENT_COMMAND_RESULT"]
    command: str
    request_id: RequestId
    handled: bool = False


class PreviewNav(WireModel):
    type: Literal["preview-nav"]
    intent: Literal["nav.goto"] = "nav.goto"
    path: str = Field(default="", max_length=2048)
    label: str = Field(default="", max_length=512)
    context: dict[str, Any] | None = None


class NavPageGenerate(WireModel):
    type: Literal["NAV_PAGE_GENERATE"]
    page_name: str = Field(min_length=1, max_length=512)
    page_context: dict[str, Any] = Field(default_factory=dict)
    nav_label: str = Field(default="", max_length=512)
    request_id: RequestId


class ResearchQuery(WireModel):
    query: str = Field(min_length=1, max_length=1000)


class ResearchOpen(WireModel):
    type: Literal["RESEARCH_OPEN"]
    payload: ResearchQuery


class SelectedElement(WireModel):
    tag: str
    text: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)
    selector: str
    xpath: str = ""


class ElementSelect(WireModel):
    type: Literal["ELEMENT_SELECT"]
    element: SelectedElement


class PreviewError(WireModel):
    type: Literal["PREVIEW_ERROR"]
    message: str = Field(max_length=4000)
    source: str | None = None
    line: int | None = None


InboundMessage = Annotated[
    Union[
        IntentTrigger,
        IntentCommandResult,
        PreviewNav,
        NavPageGenerate,
        ResearchOpen,
        ElementSelect,
        PreviewError,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[Any] = TypeAdapter(InboundMessage)

INBOUND_TYPES: frozenset[str] = frozenset(
    {
        "INTENT_TRIGGER",
        "INTENT_COMMAND_RESULT",
        "preview-nav",
        "NAV_PAGE_GENERATE",
        "RESEARCH_OPEN",
        "ELEMENT_SELECT",
        "PREVIEW_ERROR",
    }
)


# ---------------------------------------------------------------------------
# Host → surface
# ---------------------------------------------------------------------------


class IntentResult(WireModel):
    type: Literal["INTENT_RESULT"] = "INTENT_RESULT"
    request_id: RequestId
    success: bool
    message: str = ""
    data: dict[str, Any] | None = None
    error: str | None = None


class IntentCommand(WireModel):
    type: Literal["INTENT_COMMAND"] = "INTENT_COMMAND"
    command: str
    request_id: RequestId


class NavPageReady(WireModel):
    type: Literal["NAV_PAGE_READY"] = "NAV_PAGE_READY"
    request_id: RequestId
    page_name: str
    page_content: str


class NavPageError(WireModel):
    type: Literal["NAV_PAGE_ERROR"] = "NAV_PAGE_ERROR"
    request_id: RequestId
    page_name: str
    error: str


class DocumentWrite(WireModel):
    type: Literal["DOCUMENT_WRITE"] = "DOCUMENT_WRITE"
    html: str


class ElementPatch(WireModel):
    """Edit applied to one element; at least one field must be set."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    styles: dict[str, str] | None = None
    text: str | None = None
    attributes: dict[str, str] | None = None

    def is_empty(self) -> bool:
        return self.styles is None and self.text is None and self.attributes is None


class ElementUpdate(WireModel):
    type: Literal["ELEMENT_UPDATE"] = "ELEMENT_UPDATE"
    selector: str = Field(min_length=1, max_length=1024)
    patch: ElementPatch
    request_id: RequestId


class EditMode(WireModel):
    type: Literal["EDIT_MODE"] = "EDIT_MODE"
    enabled: bool


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_message(raw: str | bytes | dict[str, Any], max_bytes: int = DEFAULT_MAX_MESSAGE_BYTES) -> Any:
    """
    Decode one inbound message.

    Args:
        raw: JSON text, bytes, or an already-parsed dict
        max_bytes: Size ceiling for the serialized message

    Returns:
        One of the inbound message models

    Raises:
        ProtocolError: If the message is oversized, not JSON, of unknown type,
            or fails validation
    """
    if isinstance(raw, (str, bytes)):
        size = len(raw.encode() if isinstance(raw, str) else raw)
        if size > max_bytes:
            raise ProtocolError(f"message too large ({size} bytes)")
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"malformed JSON: {e}") from e
    else:
        data = raw
        try:
            size = len(json.dumps(data).encode())
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"unserializable message: {e}") from e
        if size > max_bytes:
            raise ProtocolError(f"message too large ({size} bytes)")

    if not isinstance(data, dict):
        raise ProtocolError("message is not an object")

    msg_type = data.get("type")
    if msg_type not in INBOUND_TYPES:
        raise ProtocolError(f"unknown message type: {msg_type!r}")

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(f"invalid {msg_type}: {e.error_count()} validation error(s)") from e


def parse_message(raw: str | bytes | dict[str, Any], max_bytes: int = DEFAULT_MAX_MESSAGE_BYTES) -> Any | None:
    """Decode one inbound message, or log and return None if it must be dropped."""
    try:
        return decode_message(raw, max_bytes=max_bytes)
    except ProtocolError as e:
        logger.warning("protocol: dropped message: %s", e)
        return None


def known_intent(intent: str) -> KnownIntent | None:
    """Map a wire intent string onto the closed enum, if it is a member."""
    try:
        return KnownIntent(intent)
    except ValueError:
        return None
