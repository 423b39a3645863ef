"""
Unit tests for weight-based pricing.
"""
import pytest
from decimal import Decimal

from orderdesk.exceptions import ValidationError
from orderdesk.services import weight_service


class TestUnits:

    @pytest.mark.parametrize('unit, expected', [
        (None, 'grams'), ('g', 'grams'), ('Grams', 'grams'), ('kg', 'kg'), (' KILOGRAMS ', 'kg'),
    ])
    def test_normalize_unit(self, unit, expected):
        assert weight_service.normalize_unit(unit) == expected

    def test_unknown_unit_is_rejected(self):
        with pytest.raises(ValidationError):
            weight_service.normalize_unit('lb')

    def test_conversion_round_trip(self):
        for grams in (Decimal('0'), Decimal('1'), Decimal('250'), Decimal('1234.567')):
            for unit in ('grams', 'kg'):
                back = weight_service.convert_to_grams(weight_service.convert_from_grams(grams, unit), unit)
                assert back == grams

    def test_kg_to_grams(self):
        assert weight_service.convert_to_grams(Decimal('1.5'), 'kg') == Decimal('1500')


class TestWeightPrice:

    def test_price_per_kg(self):
        price = weight_service.calculate_weight_based_price(Decimal('250'), 'grams', Decimal('24'), 'kg')
        assert price == Decimal('6')

    def test_requested_in_kg(self):
        price = weight_service.calculate_weight_based_price(Decimal('1.5'), 'kg', Decimal('24'), 'kg')
        assert price == Decimal('36')

    def test_null_base_unit_is_per_gram(self):
        price = weight_service.calculate_weight_based_price(Decimal('100'), 'grams', Decimal('0.05'), None)
        assert price == Decimal('5.00')

    def test_unsupported_base_unit_raises(self):
        with pytest.raises(ValidationError):
            weight_service.price_per_gram(Decimal('10'), 'lb')

    @pytest.mark.parametrize('weight', [None, 0, Decimal('-5')])
    def test_degenerate_weight_prices_at_zero(self, weight):
        assert weight_service.calculate_weight_based_price(weight, 'grams', Decimal('24'), 'kg') == Decimal('0')


class TestWeightInput:

    def test_parse_plain_number_uses_default_unit(self):
        assert weight_service.parse_weight_input('250') == (Decimal('250'), 'grams')
        assert weight_service.parse_weight_input('2', default_unit='kg') == (Decimal('2'), 'kg')

    def test_parse_with_unit(self):
        assert weight_service.parse_weight_input('1.5 kg') == (Decimal('1.5'), 'kg')
        assert weight_service.parse_weight_input('300g') == (Decimal('300'), 'grams')

    @pytest.mark.parametrize('text', [None, '', 'abc', '1.5 lb', '-3'])
    def test_parse_invalid(self, text):
        assert weight_service.parse_weight_input(text) is None

    def test_validate_weight(self):
        assert weight_service.validate_weight(Decimal('10')) == []
        assert weight_service.validate_weight(None) == ['Please enter a valid weight']
        assert weight_service.validate_weight('0') == ['Please enter a valid weight']
        assert weight_service.validate_weight('heavy') == ['Weight must be a number']

    def test_format_weight(self):
        assert weight_service.format_weight(250, 'grams') == '250.0g'
        assert weight_service.format_weight(Decimal('1.5'), 'kg') == '1.50kg'
