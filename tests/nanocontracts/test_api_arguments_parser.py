import unittest

from hathorlib.nanocontracts.types import Address, ContractId

from wlsale.crypto.util import get_address_for_name
from wlsale.nanocontracts.api_arguments_parser import parse_nc_method_call
from wlsale.nanocontracts.blueprints import WhitelistSale, WhitelistToken


class ParseNCMethodCallTestCase(unittest.TestCase):
    def setUp(self):
        self.address = get_address_for_name("alice")

    def test_no_arguments(self):
        self.assertEqual(parse_nc_method_call(WhitelistSale, "get_sale_info()"), ("get_sale_info", []))
        self.assertEqual(parse_nc_method_call(WhitelistSale, "get_sale_info"), ("get_sale_info", []))

    def test_arguments(self):
        method_name, args = parse_nc_method_call(WhitelistSale, f'is_eligible("{self.address}", ["01", "02"])')
        self.assertEqual(method_name, "is_eligible")
        self.assertEqual(args, [self.address, [b"\x01", b"\x02"]])
        self.assertIsInstance(args[0], Address)

        method_name, args = parse_nc_method_call(WhitelistSale, "calculate_cost(1000000000000000000000)")
        self.assertEqual(args, [10**21])

        method_name, args = parse_nc_method_call(WhitelistToken, f'balance_of("{self.address}")')
        self.assertEqual(args, [self.address])

    def test_contract_arguments(self):
        contract_id = "ab" * 32
        method_name, args = parse_nc_method_call(WhitelistToken, f'balance_of("{contract_id}")')
        self.assertEqual(args, [ContractId(b"\xab" * 32)])

    def test_invalid(self):
        cases = [
            "calculate_cost(1",
            "missing(1)",
            "calculate_cost(1, 2)",
            "calculate_cost()",
            "calculate_cost(nope)",
            'is_whitelisted("not-an-address")',
        ]
        for call_info in cases:
            with self.subTest(call_info=call_info):
                with self.assertRaises(ValueError):
                    parse_nc_method_call(WhitelistSale, call_info)
