"""
Unit tests for number parsing and display formatting.
"""
import pytest
from datetime import date
from decimal import Decimal

from orderdesk.utils.formatters import money, round_money, to_json_value
from orderdesk.utils.number_format import parse_amount, parse_int, to_decimal


class TestToDecimal:

    def test_float_keeps_short_repr(self):
        assert to_decimal(0.1) == Decimal('0.1')

    def test_empty_values_use_default(self):
        assert to_decimal(None) == Decimal('0')
        assert to_decimal('  ', default=None) is None

    @pytest.mark.parametrize('value', ['1e3', 'NaN', 'abc', '1,5', True, float('inf')])
    def test_rejects_non_plain_numbers(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_parse_amount(self):
        assert parse_amount('12.50') == Decimal('12.50')
        with pytest.raises(ValueError, match='shipping cannot be negative'):
            parse_amount('-1', 'shipping')

    def test_parse_int(self):
        assert parse_int('3') == 3
        assert parse_int(None, default=None) is None
        with pytest.raises(ValueError, match='quantity must be a whole number'):
            parse_int('1.5', 'quantity')


class TestMoney:

    def test_round_half_up(self):
        assert round_money(Decimal('0.005')) == Decimal('0.01')
        assert round_money(Decimal('7.2049')) == Decimal('7.20')
        assert round_money(None) == Decimal('0.00')

    def test_money_string(self):
        assert money(Decimal('102.2')) == '102.20'
        assert money(36) == '36.00'

    def test_to_json_value(self):
        value = to_json_value({'total': Decimal('1.005'), 'items': [{'on': date(2024, 3, 1)}], 'n': 2})
        assert value == {'total': '1.01', 'items': [{'on': '2024-03-01'}], 'n': 2}
