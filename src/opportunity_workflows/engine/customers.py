"""Customer display-data resolution.

Customer names and addresses are scattered across several independent records:
the survey, the saved calculator session, free-form workflow payloads and the
CRM. This module turns each of them into an optional :class:`CustomerInfo` and
combines them with a first-match-wins chain.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from opportunity_workflows.core.models import ContactRecord, CustomerInfo

if TYPE_CHECKING:
    from opportunity_workflows.core.models import OpportunityRecord, ProgressData
    from opportunity_workflows.core.types import JSONDocument

__all__ = [
    "CustomerResolver",
    "CustomerSources",
    "DEFAULT_RESOLVERS",
    "address_from_opportunity",
    "clean_customer_name",
    "customer_from_crm",
    "customer_from_payload",
    "customer_name_from_opportunity",
    "fallback_customer_name",
    "from_calculator",
    "from_progress",
    "from_survey",
    "is_placeholder_name",
    "resolve_customer",
]

_POSTCODE_PREFIX = re.compile(r"^[A-Z]{1,2}\d{1,2}\s?\d[A-Z]{2},\s*", re.IGNORECASE)
_EMAIL_PREFIX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,},\s*")
_EMAIL_SEPARATORS = re.compile(r"[._-]")
_WORD_START = re.compile(r"\b\w")
_NON_DIGITS = re.compile(r"\D")

_NAME_KEYS = ("customerName", "customerInfo.name", "name", "contactName", "contact.name")
_ADDRESS_KEYS = ("customerAddress", "customerInfo.address", "address", "contactAddress")
_POSTCODE_KEYS = ("customerPostcode", "customerInfo.postcode", "postcode", "contactPostcode")


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _lookup(document: Mapping[str, Any] | None, dotted_key: str) -> Any:
    current: Any = document
    for part in dotted_key.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _first_text(document: Mapping[str, Any] | None, keys: Sequence[str]) -> str | None:
    for key in keys:
        value = _text(_lookup(document, key))
        if value:
            return value
    return None


def _name_from_email(email: str) -> str:
    local_part = _EMAIL_SEPARATORS.sub(" ", email.split("@")[0])
    return _WORD_START.sub(lambda m: m.group().upper(), local_part)


def fallback_customer_name(opportunity_id: str) -> str:
    """Synthesize a display name from the last six characters of the opportunity id."""
    return f"Customer {opportunity_id[-6:]}"


def is_placeholder_name(name: str | None) -> bool:
    """Whether ``name`` is a synthesized placeholder rather than a real name."""
    return not name or name == "Customer" or name.startswith("Customer ")


def clean_customer_name(name: str) -> str:
    """Strip a leading postcode or e-mail prefix from a display name.

    Example:
        >>> clean_customer_name("N12 9JA, Lisa Jones")
        'Lisa Jones'
    """
    cleaned = _POSTCODE_PREFIX.sub("", name)
    cleaned = _EMAIL_PREFIX.sub("", cleaned)
    cleaned = re.sub(r"^,\s*", "", cleaned)
    cleaned = re.sub(r"\s*,$", "", cleaned)
    return cleaned.strip()


def customer_name_from_opportunity(record: OpportunityRecord, opportunity_id: str) -> str:
    """Extract a display name from a CRM opportunity.

    Sources are consulted in order: contact first and last name, contact full
    name, opportunity title, e-mail local part, company name, the last four
    digits of the phone number, and finally a name synthesized from the
    opportunity id. The result is cleaned with :func:`clean_customer_name`.

    Args:
        record: The CRM opportunity.
        opportunity_id: Used for the synthesized fallback.

    Returns:
        A non-empty display name.
    """
    contact = record.contact or ContactRecord()
    first, last = _text(contact.first_name), _text(contact.last_name)
    email, phone = _text(contact.email), _text(contact.phone)

    candidates = (
        f"{first} {last}" if first and last else None,
        _text(contact.name),
        _text(record.name),
        _name_from_email(email) if email else None,
        _text(contact.company_name),
        f"Customer ({_NON_DIGITS.sub('', phone)[-4:]})" if phone else None,
    )
    name = next((candidate for candidate in candidates if candidate), None)

    if name:
        name = clean_customer_name(name)
    return name or fallback_customer_name(opportunity_id)


def address_from_opportunity(record: OpportunityRecord | None, placeholder: str) -> str:
    """Format the first contact address of a CRM opportunity.

    Args:
        record: The CRM opportunity, if one was fetched.
        placeholder: Returned when no address line is available.
    """
    if record and record.contact and record.contact.addresses:
        first = record.contact.addresses[0]
        if _text(first.address1):
            return f"{first.address1}, {first.city or ''}"
    return placeholder


def customer_from_payload(data: Mapping[str, Any] | None) -> CustomerInfo:
    """Read the customer name and postcode carried by a step payload."""
    return CustomerInfo(
        name=_first_text(data, ("customerName", "customerInfo.name")),
        address=_first_text(data, ("customerAddress", "customerInfo.address")),
        postcode=_first_text(data, ("postcode", "customerInfo.postcode")),
        source="payload",
    )


def customer_from_crm(record: OpportunityRecord | None) -> CustomerInfo:
    """Read the customer name and postcode used to name archive folders.

    Unlike :func:`customer_name_from_opportunity` this returns no name at all
    when the contact and the opportunity carry none.
    """
    if record is None:
        return CustomerInfo(source="crm")

    contact = record.contact
    name: str | None = None
    if contact and _text(contact.first_name) and _text(contact.last_name):
        name = f"{contact.first_name} {contact.last_name}"
    elif contact and _text(contact.name):
        name = contact.name
    elif _text(record.name):
        name = record.name

    postcode = None
    if contact and contact.addresses:
        postcode = _text(contact.addresses[0].postal_code)
    return CustomerInfo(name=name, postcode=postcode, source="crm")


@dataclass
class CustomerSources:
    """Pre-fetched records the resolvers read from.

    Attributes:
        surveys: Survey documents keyed by opportunity id.
        calculators: Saved calculator data keyed by opportunity id.
        progress: Progress records keyed by opportunity id.
    """

    surveys: Mapping[str, JSONDocument] = field(default_factory=dict)
    calculators: Mapping[str, JSONDocument] = field(default_factory=dict)
    progress: Mapping[str, ProgressData] = field(default_factory=dict)


CustomerResolver = Callable[[str, CustomerSources], CustomerInfo | None]


def from_survey(opportunity_id: str, sources: CustomerSources) -> CustomerInfo | None:
    """Resolve from the first page of the survey."""
    survey = sources.surveys.get(opportunity_id)
    page1 = _lookup(survey, "page1")
    if not isinstance(page1, Mapping):
        return None

    first = _text(page1.get("customerFirstName")) or ""
    last = _text(page1.get("customerLastName")) or ""
    return CustomerInfo(
        name=f"{first} {last}".strip() or None,
        address=_first_text(page1, ("customerAddress", "address")),
        postcode=_first_text(page1, ("customerPostcode", "postcode")),
        source="survey",
    )


def from_calculator(opportunity_id: str, sources: CustomerSources) -> CustomerInfo | None:
    """Resolve from the customer details saved by the calculator."""
    details = _lookup(sources.calculators.get(opportunity_id), "customerDetails")
    if not isinstance(details, Mapping):
        return None

    return CustomerInfo(
        name=_text(details.get("customerName")),
        address=_text(details.get("address")),
        postcode=_text(details.get("postcode")),
        source="calculator",
    )


def _from_document(document: Mapping[str, Any] | None) -> CustomerInfo | None:
    if not isinstance(document, Mapping):
        return None

    name = _first_text(document, _NAME_KEYS)
    if not name:
        first = _text(_lookup(document, "contact.firstName"))
        last = _text(_lookup(document, "contact.lastName"))
        if first and last:
            name = f"{first} {last}"
    if is_placeholder_name(name):
        return None

    return CustomerInfo(
        name=name,
        address=_first_text(document, _ADDRESS_KEYS),
        postcode=_first_text(document, _POSTCODE_KEYS),
        source="progress",
    )


def from_progress(opportunity_id: str, sources: CustomerSources) -> CustomerInfo | None:
    """Resolve from the progress payload, then from step payloads in step order.

    Placeholder names such as ``"Customer 123abc"`` are ignored.
    """
    progress = sources.progress.get(opportunity_id)
    if progress is None:
        return None

    info = _from_document(progress.step_data)
    if info is not None:
        return info

    for step in sorted(progress.steps, key=lambda s: s.step_number):
        info = _from_document(step.data)
        if info is not None:
            return info
    return None


DEFAULT_RESOLVERS: tuple[CustomerResolver, ...] = (from_survey, from_calculator, from_progress)
"""Resolvers in priority order."""


def resolve_customer(
    opportunity_id: str,
    sources: CustomerSources,
    resolvers: Sequence[CustomerResolver] = DEFAULT_RESOLVERS,
) -> CustomerInfo | None:
    """Run a resolver chain for one opportunity.

    The first resolver that yields a name wins. Resolvers after it can only
    fill in a missing address or postcode. Resolvers before it that yield no
    name contribute nothing.

    Args:
        opportunity_id: The opportunity to resolve.
        sources: Pre-fetched records.
        resolvers: Resolvers in priority order.

    Returns:
        The resolved customer, or None when no resolver found a name.
    """
    found: CustomerInfo | None = None
    for resolver in resolvers:
        info = resolver(opportunity_id, sources)
        if info is None:
            continue
        if found is None:
            if info.name:
                found = info
        else:
            found = found.merge(info)
    return found
