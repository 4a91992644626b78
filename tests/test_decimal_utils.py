"""
Tests for Decimal coercion and rounding helpers.
"""

from decimal import Decimal, InvalidOperation

import pytest

from acbledger.decimal_utils import ZERO, quantize_money, to_decimal, to_fixed


class TestToDecimal:

    @pytest.mark.parametrize('raw, expected', [
        ('45000.123', Decimal('45000.123')),
        (0.1, Decimal('0.1')),
        (3, Decimal('3')),
        (' 1,234.5 ', Decimal('1234.5')),
        (Decimal('2.50'), Decimal('2.50')),
    ])
    def test_converts(self, raw, expected):
        assert to_decimal(raw) == expected

    @pytest.mark.parametrize('raw', [None, '', '  ', 'nan', float('nan')])
    def test_missing_uses_default(self, raw):
        assert to_decimal(raw, ZERO) == ZERO

    @pytest.mark.parametrize('raw', [None, 'abc', True, 'inf'])
    def test_invalid_without_default_raises(self, raw):
        with pytest.raises(InvalidOperation):
            to_decimal(raw)

    def test_invalid_with_default(self):
        assert to_decimal('abc', Decimal('7')) == Decimal('7')


class TestRounding:

    def test_to_fixed_rounds_to_18_places(self):
        assert to_fixed(Decimal(1) / Decimal(3)) == Decimal('0.333333333333333333')

    def test_to_fixed_keeps_coarser_values(self):
        value = Decimal('12.50')
        assert to_fixed(value) is value

    def test_quantize_money_half_up(self):
        assert quantize_money(Decimal('0.125')) == Decimal('0.13')
        assert quantize_money(Decimal('10')) == Decimal('10.00')
