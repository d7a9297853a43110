"""
Test suite for the fiscal calendar
"""

import pytest
from datetime import date

from welfare_ledger.fiscal import (
    FiscalYear, FiscalQuarter, fiscal_year_for, fiscal_quarter_for, fiscal_year_options
)


class TestFiscalYear:
    """Test April-March fiscal years"""

    def test_boundaries(self):
        fiscal_year = FiscalYear(2025)

        assert fiscal_year.start == date(2025, 4, 1)
        assert fiscal_year.end == date(2026, 3, 31)
        assert fiscal_year.label == "2025-26"

    def test_century_label(self):
        assert FiscalYear(2099).label == "2099-00"

    @pytest.mark.parametrize("day,start_year", [
        (date(2025, 4, 1), 2025),
        (date(2025, 12, 31), 2025),
        (date(2026, 1, 1), 2025),
        (date(2026, 3, 31), 2025),
        (date(2025, 3, 31), 2024),
    ])
    def test_for_date(self, day, start_year):
        assert fiscal_year_for(day).start_year == start_year

    def test_contains(self):
        fiscal_year = FiscalYear(2024)

        assert fiscal_year.contains(date(2024, 4, 1))
        assert fiscal_year.contains(date(2025, 3, 31))
        assert not fiscal_year.contains(date(2025, 4, 1))


class TestFiscalQuarter:
    """Test fiscal quarters"""

    @pytest.mark.parametrize("day,number,start,end", [
        (date(2025, 5, 10), 1, date(2025, 4, 1), date(2025, 6, 30)),
        (date(2025, 7, 1), 2, date(2025, 7, 1), date(2025, 9, 30)),
        (date(2025, 12, 31), 3, date(2025, 10, 1), date(2025, 12, 31)),
        (date(2026, 2, 14), 4, date(2026, 1, 1), date(2026, 3, 31)),
    ])
    def test_for_date(self, day, number, start, end):
        quarter = fiscal_quarter_for(day)

        assert quarter.number == number
        assert quarter.start == start
        assert quarter.end == end

    def test_q4_belongs_to_previous_april(self):
        quarter = FiscalQuarter.for_date(date(2026, 2, 14))

        assert quarter.fiscal_year.label == "2025-26"
        assert quarter.label == "Q4 FY 2025-26"

    def test_quarters_partition_the_year(self):
        quarters = FiscalYear(2025).quarters()

        assert quarters[0].start == date(2025, 4, 1)
        assert quarters[-1].end == date(2026, 3, 31)
        for previous, following in zip(quarters, quarters[1:]):
            assert (following.start - previous.end).days == 1

    def test_invalid_quarter_number(self):
        with pytest.raises(ValueError):
            FiscalQuarter(2025, 5)


class TestFiscalYearOptions:
    """Test fiscal year selector options"""

    def test_includes_current_year_without_data(self):
        assert fiscal_year_options([], today=date(2025, 6, 1)) == [2025]

    def test_newest_first_from_data(self):
        dates = [date(2021, 5, 1), date(2023, 2, 1), None]

        options = fiscal_year_options(dates, today=date(2025, 6, 1))

        assert options == [2025, 2022, 2021]

    def test_floor(self):
        options = fiscal_year_options([date(2010, 5, 1), date(2014, 1, 1)], today=date(2014, 6, 1))

        assert options == [2014, 2013]
