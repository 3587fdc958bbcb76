import unittest
from decimal import Decimal

from common.utils.gst import calculate_gst, to_minor_units, to_money


class TestGst(unittest.TestCase):
    def test_intra_state_split(self):
        gst = calculate_gst(Decimal("12000"))
        self.assertEqual(Decimal("2160.00"), gst.total)
        self.assertEqual(Decimal("1080.00"), gst.cgst)
        self.assertEqual(Decimal("1080.00"), gst.sgst)
        self.assertEqual(Decimal("0"), gst.igst)

    def test_odd_paise_halves_still_sum_to_total(self):
        # 0.18 * 100.05 = 18.009 -> 18.01, which does not halve evenly
        gst = calculate_gst(Decimal("100.05"))
        self.assertEqual(Decimal("18.01"), gst.total)
        self.assertEqual(gst.total, gst.cgst + gst.sgst)

    def test_inter_state_uses_igst_only(self):
        gst = calculate_gst(Decimal("10800"), is_interstate=True)
        self.assertEqual(Decimal("1944.00"), gst.igst)
        self.assertEqual(Decimal("0"), gst.cgst)
        self.assertEqual(Decimal("0"), gst.sgst)

    def test_to_money_rounds_half_up(self):
        self.assertEqual(Decimal("2.01"), to_money(Decimal("2.005")))
        self.assertEqual(Decimal("2.00"), to_money(2))
        self.assertEqual(Decimal("0.10"), to_money(0.1))

    def test_to_minor_units(self):
        self.assertEqual(1416000, to_minor_units(Decimal("14160")))
        self.assertEqual(1274401, to_minor_units(Decimal("12744.005")))


if __name__ == "__main__":
    unittest.main()
