"""
Unit tests for display formatters and payload parsing helpers.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from gestionfarma.exceptions import ValidationError
from gestionfarma.utils.formatters import num_pe, money_pe, date_pe, datetime_pe
from gestionfarma.utils.number_format import parse_money, parse_optional_money, parse_int, parse_date


class TestFormatters:

    def test_num_pe(self):
        assert num_pe(1500) == '1,500.00'
        assert num_pe(Decimal('1500.5'), 1) == '1,500.5'
        assert num_pe(None) == '-'
        assert num_pe('abc') == '-'

    def test_money_pe(self):
        assert money_pe(5) == 'S/ 5.00'
        assert money_pe(Decimal('1234.5')) == 'S/ 1,234.50'
        assert money_pe(Decimal('-3.5')) == '-S/ 3.50'

    def test_dates(self):
        assert date_pe(date(2026, 1, 12)) == '12/01/2026'
        assert date_pe(datetime(2026, 1, 12, 8, 0)) == '12/01/2026'
        assert datetime_pe(datetime(2026, 1, 12, 15, 30)) == '12/01/2026 15:30'
        assert datetime_pe(None) == '-'


class TestParsing:

    @pytest.mark.parametrize('raw,expected', [
        ('10', Decimal('10.00')),
        ('S/ 1,234.5', Decimal('1234.50')),
        (7.25, Decimal('7.25')),
    ])
    def test_parse_money(self, raw, expected):
        assert parse_money(raw) == expected

    @pytest.mark.parametrize('raw', ['', None, 'diez', '-5'])
    def test_parse_money_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_money(raw)

    def test_parse_money_allows_negative_when_asked(self):
        assert parse_money('-5', allow_negative=True) == Decimal('-5.00')

    def test_parse_optional_money(self):
        assert parse_optional_money('') is None
        assert parse_optional_money('20') == Decimal('20.00')

    def test_parse_int(self):
        assert parse_int(' 42 ', 'id') == 42
        with pytest.raises(ValidationError):
            parse_int('4.5', 'id')

    def test_parse_date(self):
        assert parse_date('2026-03-01') == date(2026, 3, 1)
        assert parse_date('') is None
        with pytest.raises(ValidationError):
            parse_date('01/03/2026')
