"""
Event query engine.

Two independent filters combine with AND:

* the selected-field filter ``(field, value)`` - a fixed dotted path from the
  event root, or full-text when the field is empty, ``any`` or ``fulltext``;
* the advanced query string - ``key:value`` tokens searched for anywhere in the
  event, plus free-text tokens.

Grammar of the advanced query::

    query  ::= token*
    token  ::= quoted | key ':' quoted | key ':' bareword | bareword
    quoted ::= '"' .* '"' | "'" .* "'"

Whitespace separates tokens except inside a quoted span.
"""
from functools import cached_property
from typing import Iterable
from pydantic import BaseModel, Field

from .event_models import Event
from .json_model import MISSING, iter_properties, render, resolve_path, stringify

QUOTES = ("'", '"')
FULLTEXT_FIELDS = frozenset({"", "any", "fulltext"})

FIELD_CATALOG: list[str] = [
    "any",
    "fulltext",
    "id",
    "channel",
    "receivedAt",
    "meta.ip",
    "meta.userAgent",
    "meta.contentType",
    "payload.EventType",
    "payload.Booking.Id",
    "payload.Booking.BookingReference",
    "payload.Booking.Status",
    "payload.Driver.Callsign",
    "payload.Driver.Name",
    "payload.Vehicle.Callsign",
    "payload.Vehicle.Registration",
    "payload.Location.Latitude",
    "payload.Location.Longitude",
    "payload._raw",
]


class FieldConstraint(BaseModel):
    """``key:value`` token; both sides lower-cased."""
    key: str
    value: str


class ParsedQuery(BaseModel):
    """Structured form of an advanced query string."""
    fields: list[FieldConstraint] = Field(default_factory=list)
    texts: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields and not self.texts


class EventFilter(BaseModel):
    """Filter parameters as supplied by a caller."""
    q: str = Field(default="", description="Advanced query string")
    field: str = Field(default="", description="Dotted path, or any/fulltext")
    value: str = Field(default="", description="Substring expected at field")

    @property
    def is_active(self) -> bool:
        return bool(self.q.strip()) or bool(self.value.strip())


def strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] in QUOTES and text[-1] == text[0]:
        return text[1:-1]
    return text


def _is_fully_quoted(token: str) -> bool:
    """True when the token's opening quote is closed by its last character."""
    return (
        len(token) >= 2
        and token[0] in QUOTES
        and token.find(token[0], 1) == len(token) - 1
    )


def tokenize(text: str) -> list[str]:
    """
    Split on whitespace outside quoted spans.

    Quotes are kept on the returned tokens; an unterminated quote runs to the
    end of the input.
    """
    tokens: list[str] = []
    current: list[str] = []
    quote: str | None = None

    for ch in text:
        if quote is not None:
            current.append(ch)
            if ch == quote:
                quote = None
        elif ch in QUOTES:
            quote = ch
            current.append(ch)
        elif ch.isspace():
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(ch)

    if current:
        tokens.append("".join(current))
    return tokens


def parse_query(text: str | None) -> ParsedQuery:
    """Tokenize and classify an advanced query string."""
    parsed = ParsedQuery()
    for token in tokenize(text or ""):
        if not _is_fully_quoted(token):
            colon = token.find(":")
            if colon > 0:
                key = strip_quotes(token[:colon]).lower()
                value = strip_quotes(token[colon + 1:]).lower()
                if key and value:
                    parsed.fields.append(FieldConstraint(key=key, value=value))
                    continue

        word = strip_quotes(token).lower()
        if word:
            parsed.texts.append(word)
    return parsed


class _Subject:
    """An event under test; renders its JSON text at most once."""

    def __init__(self, event: Event):
        self.document = event.to_document()

    @cached_property
    def text(self) -> str:
        return render(self.document).lower()


class EventMatcher:
    """A compiled :class:`EventFilter`."""

    def __init__(self, flt: EventFilter | None = None):
        flt = flt or EventFilter()
        self.field = flt.field.strip()
        self.value = flt.value.strip().lower()
        self.query = parse_query(flt.q)

    @property
    def is_trivial(self) -> bool:
        return not self.value and self.query.is_empty

    def matches(self, event: Event) -> bool:
        if self.is_trivial:
            return True
        subject = _Subject(event)
        return self._matches_selected_field(subject) and self._matches_query(subject)

    def _matches_selected_field(self, subject: _Subject) -> bool:
        if not self.value:
            return True

        if self.field.lower() in FULLTEXT_FIELDS:
            return self.value in subject.text

        resolved = resolve_path(subject.document, self.field)
        candidate = "" if resolved is MISSING else stringify(resolved)
        return self.value in candidate.lower()

    def _matches_query(self, subject: _Subject) -> bool:
        for constraint in self.query.fields:
            if not self._has_property(subject, constraint):
                return False

        for word in self.query.texts:
            if word not in subject.text:
                return False

        return True

    @staticmethod
    def _has_property(subject: _Subject, constraint: FieldConstraint) -> bool:
        """Deep key search: any property named ``key`` whose value contains ``value``."""
        for key, value in iter_properties(subject.document):
            if key.lower() == constraint.key and constraint.value in stringify(value).lower():
                return True
        return False


class QueryEngine:
    """Applies event filters to sequences of events."""

    def compile(self, flt: EventFilter | None) -> EventMatcher:
        return EventMatcher(flt)

    def matches(self, event: Event, flt: EventFilter | None) -> bool:
        return self.compile(flt).matches(event)

    def filter(self, events: Iterable[Event], flt: EventFilter | None) -> list[Event]:
        """Events satisfying ``flt``, in input order. Inputs are not modified."""
        matcher = self.compile(flt)
        if matcher.is_trivial:
            return list(events)
        return [event for event in events if matcher.matches(event)]
