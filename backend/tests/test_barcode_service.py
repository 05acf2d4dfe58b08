import unittest

from stockrecon.errors import BarcodeError
from stockrecon.services.barcode_service import (
    BarcodeGenerator,
    parse_barcode,
    validate_code128,
)

from fakes import InMemoryUnitStore


class BarcodeFormatTests(unittest.TestCase):
    def test_valid_unit_barcode(self):
        result = validate_code128("GPMSU000123")
        self.assertTrue(result.is_valid)
        self.assertEqual(result.format, "CODE128")
        self.assertEqual(result.errors, ())

    def test_rejects_empty(self):
        self.assertFalse(validate_code128("").is_valid)

    def test_rejects_wrong_prefix_and_width(self):
        self.assertFalse(validate_code128("ABCDU000123").is_valid)
        self.assertFalse(validate_code128("GPMSU123").is_valid)

    def test_rejects_non_printable_characters(self):
        result = validate_code128("GPMSU00\x01123")
        self.assertFalse(result.is_valid)
        self.assertIn("Invalid characters", result.errors[0])

    def test_rejects_overlong(self):
        result = validate_code128("GPMSU" + "0" * 30)
        self.assertFalse(result.is_valid)
        self.assertIn("length", result.errors[0])

    def test_custom_prefix(self):
        self.assertTrue(validate_code128("SHOPP0042", prefix="SHOP", width=4).is_valid)

    def test_parse(self):
        parsed = parse_barcode("GPMSU000123")
        self.assertEqual((parsed.prefix, parsed.kind, parsed.counter), ("GPMS", "unit", 123))
        self.assertEqual(parse_barcode("GPMSP000007").kind, "product")
        self.assertIsNone(parse_barcode("nonsense"))


class BarcodeGeneratorTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryUnitStore()
        self.generator = BarcodeGenerator(self.store, prefix="GPMS", counter_width=6)

    def test_generates_sequential_codes_and_registers_them(self):
        first = self.generator.generate(10, {"serial": "A1", "color": "blue"})
        second = self.generator.generate(11, {"serial": "A2"})

        self.assertEqual(first, "GPMSU000001")
        self.assertEqual(second, "GPMSU000002")
        self.assertEqual(self.store.registrations[first]["entity_type"], "product_unit")
        self.assertEqual(self.store.registrations[first]["payload"], {"serial": "A1", "color": "blue"})

    def test_counter_overflow_is_a_barcode_error(self):
        self.store.sequences["unit"] = 1_000_000

        with self.assertRaises(BarcodeError):
            self.generator.generate(1, {})
        self.assertEqual(self.store.registrations, {})

    def test_store_failures_become_barcode_errors(self):
        self.store.fail("next_barcode_number")
        with self.assertRaises(BarcodeError):
            self.generator.generate(1, {})

        self.store.heal()
        self.store.fail("register_barcode")
        with self.assertRaises(BarcodeError):
            self.generator.generate(1, {})

    def test_format_and_parse_agree(self):
        code = self.generator.format("product", 42)
        self.assertEqual(code, "GPMSP000042")
        self.assertEqual(self.generator.parse(code).counter, 42)
