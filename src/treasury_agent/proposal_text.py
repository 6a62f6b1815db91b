"""
Encode and decode the labeled fields carried in proposal descriptions.

Proposal descriptions are the only on-chain link between a governance
proposal and the coin it buys. New descriptions carry a
``Schema: treasury-proposal/1`` line; descriptions without it are read
with the same labeled-field rules.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

SCHEMA_NAME = "treasury-proposal"
SCHEMA_VERSION = 1

ADDRESS_PATTERNS = [
    re.compile(r"Address:\s*(0x[a-fA-F0-9]{40})"),
    re.compile(r"Coin ID:\s*(0x[a-fA-F0-9]{40})"),
    re.compile(r"coin:\s*(0x[a-fA-F0-9]{40})", re.IGNORECASE),
]
SYMBOL_PATTERN = re.compile(r"Symbol:\s*([^\n]+)")
NAME_PATTERN = re.compile(r"(?<![A-Za-z])Name:\s*([^\n]+)")
AMOUNT_PATTERN = re.compile(r"Amount:\s*([\d.]+)\s*ETH")
SCHEMA_PATTERN = re.compile(r"Schema:\s*([\w-]+)/(\d+)")


@dataclass
class ProposalDetails:
    """What goes into a new buy-coin proposal description."""

    coin_address: str
    amount_eth: Decimal
    reason: str
    coin_symbol: str | None = None
    coin_name: str | None = None
    slippage_percent: float = 5
    source: str = "agent"
    confidence_score: float | None = None


@dataclass
class DecodedDescription:
    """Fields recovered from a proposal description."""

    coin_address: str
    coin_symbol: str | None = None
    coin_name: str | None = None
    amount_eth: Decimal | None = None
    schema_version: int | None = None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or value.upper() == "N/A":
        return None
    return value


def encode_description(details: ProposalDetails) -> str:
    """Render a proposal description, title line first."""
    label = details.coin_symbol or details.coin_name or details.coin_address
    lines = [
        f"# Buy {label}",
        "",
        f"Name: {details.coin_name or 'N/A'}",
        f"Symbol: {details.coin_symbol or 'N/A'}",
        f"Address: {details.coin_address}",
        f"Amount: {details.amount_eth} ETH",
        f"Max Slippage: {details.slippage_percent}%",
        f"Source: {details.source}",
    ]
    if details.confidence_score is not None:
        lines.append(f"Confidence: {details.confidence_score:.2f}")
    lines += [
        "",
        "## Rationale",
        "",
        details.reason.strip(),
        "",
        f"Schema: {SCHEMA_NAME}/{SCHEMA_VERSION}",
    ]
    return "\n".join(lines)


def decode_amount(text: str | None) -> Decimal | None:
    """Parse ``Amount: X ETH``; None when absent or unparsable."""
    if not text:
        return None
    match = AMOUNT_PATTERN.search(text)
    if not match:
        return None
    try:
        amount = Decimal(match.group(1))
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def decode_description(text: str | None) -> DecodedDescription | None:
    """Recover coin fields from a description, or None if it names no address."""
    if not text:
        return None

    address = None
    for pattern in ADDRESS_PATTERNS:
        match = pattern.search(text)
        if match:
            address = match.group(1)
            break
    if address is None:
        return None

    symbol = SYMBOL_PATTERN.search(text)
    name = NAME_PATTERN.search(text)
    schema = SCHEMA_PATTERN.search(text)
    version = None
    if schema and schema.group(1) == SCHEMA_NAME:
        version = int(schema.group(2))

    return DecodedDescription(
        coin_address=address,
        coin_symbol=_clean(symbol.group(1)) if symbol else None,
        coin_name=_clean(name.group(1)) if name else None,
        amount_eth=decode_amount(text),
        schema_version=version,
    )


def description_title(text: str | None) -> str | None:
    """First line of a description with markdown heading marks removed."""
    if not text:
        return None
    first = text.strip().splitlines()[0] if text.strip() else ""
    return first.lstrip("#").strip() or None
