# Overview: Barcode allocation, validation and parsing for product units.

"""
Unit barcodes

FORMAT: <PREFIX><KIND><NNNNNN>, e.g. GPMSU000042
- PREFIX: installation prefix (Config.BARCODE_PREFIX, default GPMS)
- KIND:   U = product unit, P = product
- NNNNNN: zero-padded counter from the barcode_sequences table

The code is plain printable ASCII, so it is valid CODE128 input. It does not
encode the serial itself; the serial and device-spec metadata are stored in the
barcode registry keyed to the unit id. The symbol stays short enough for
thermal labels.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..errors import BarcodeError, PersistenceError
from .unit_store import UnitStore


logger = logging.getLogger(__name__)

KIND_UNIT = "unit"
KIND_PRODUCT = "product"
KIND_CHARS = {KIND_UNIT: "U", KIND_PRODUCT: "P"}

MIN_LENGTH = 4
MAX_LENGTH = 25


@dataclass(frozen=True)
class BarcodeValidation:
    is_valid: bool
    format: str
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedBarcode:
    prefix: str
    kind: str
    counter: int


def _pattern(prefix: str, width: int) -> re.Pattern:
    return re.compile(rf"^({re.escape(prefix)})([UP])(\d{{{width}}})$")


def validate_code128(barcode: str, *, prefix: str = "GPMS", width: int = 6) -> BarcodeValidation:
    """Check length, printable-ASCII range and the installation format."""
    if not barcode or not isinstance(barcode, str):
        return BarcodeValidation(False, "INVALID", ("Barcode must be a non-empty string",))

    errors: list[str] = []
    if len(barcode) < MIN_LENGTH or len(barcode) > MAX_LENGTH:
        errors.append(f"Barcode length must be between {MIN_LENGTH} and {MAX_LENGTH} characters")

    invalid_chars = [ch for ch in barcode if ord(ch) < 32 or ord(ch) > 126]
    if invalid_chars:
        errors.append(f"Invalid characters found: {', '.join(repr(ch) for ch in invalid_chars)}")

    if not errors and not _pattern(prefix, width).match(barcode):
        errors.append(f"Barcode does not follow {prefix} format ({prefix}[U|P]{'N' * width})")

    return BarcodeValidation(not errors, "CODE128", tuple(errors))


def parse_barcode(barcode: str, *, prefix: str = "GPMS", width: int = 6) -> Optional[ParsedBarcode]:
    match = _pattern(prefix, width).match(barcode or "")
    if not match:
        return None
    _, kind_char, counter = match.groups()
    kind = KIND_UNIT if kind_char == "U" else KIND_PRODUCT
    return ParsedBarcode(prefix=prefix, kind=kind, counter=int(counter))


class BarcodeGenerator:
    """Allocates and registers unit barcodes."""

    def __init__(self, store: UnitStore, *, prefix: str = "GPMS", counter_width: int = 6):
        self.store = store
        self.prefix = prefix
        self.counter_width = counter_width

    def format(self, kind: str, number: int) -> str:
        return f"{self.prefix}{KIND_CHARS[kind]}{number:0{self.counter_width}d}"

    def validate(self, barcode: str) -> BarcodeValidation:
        return validate_code128(barcode, prefix=self.prefix, width=self.counter_width)

    def parse(self, barcode: str) -> Optional[ParsedBarcode]:
        return parse_barcode(barcode, prefix=self.prefix, width=self.counter_width)

    def generate(self, unit_id: int, metadata: dict) -> str:
        """
        Allocate the next unit barcode and register it against unit_id.

        Raises:
            BarcodeError: counter could not be allocated, the result is not a
                valid code (e.g. counter overflowed the width), or the
                registry write failed.
        """
        try:
            number = self.store.next_barcode_number(KIND_UNIT)
        except PersistenceError as exc:
            raise BarcodeError(f"Failed to allocate barcode for unit {unit_id}: {exc}") from exc

        barcode = self.format(KIND_UNIT, number)
        validation = self.validate(barcode)
        if not validation.is_valid:
            raise BarcodeError(f"Generated invalid barcode {barcode!r}: {', '.join(validation.errors)}")

        try:
            self.store.register_barcode(barcode, "product_unit", unit_id, dict(metadata))
        except PersistenceError as exc:
            raise BarcodeError(f"Failed to register barcode {barcode} for unit {unit_id}: {exc}") from exc

        logger.debug("Allocated barcode %s for unit %s", barcode, unit_id)
        return barcode
