"""
Fiscal Calendar Module

The association reports on an April-to-March fiscal year. FY 2025 runs from
2025-04-01 to 2026-03-31 and is labelled "2025-26". Quarters follow the same
calendar: Q1 Apr-Jun, Q2 Jul-Sep, Q3 Oct-Dec, Q4 Jan-Mar.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

FISCAL_YEAR_START_MONTH = 4

# (start month, end month, end day) keyed by quarter number
_QUARTER_MONTHS = {
    1: (4, 6, 30),
    2: (7, 9, 30),
    3: (10, 12, 31),
    4: (1, 3, 31),
}


@dataclass(frozen=True)
class FiscalYear:
    """April 1 of ``start_year`` through March 31 of the following year"""
    start_year: int

    @property
    def start(self) -> date:
        return date(self.start_year, FISCAL_YEAR_START_MONTH, 1)

    @property
    def end(self) -> date:
        return date(self.start_year + 1, 3, 31)

    @property
    def label(self) -> str:
        return f"{self.start_year}-{str(self.start_year + 1)[-2:]}"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def quarters(self) -> List['FiscalQuarter']:
        return [FiscalQuarter(self.start_year, number) for number in (1, 2, 3, 4)]

    @classmethod
    def for_date(cls, day: date) -> 'FiscalYear':
        if day.month >= FISCAL_YEAR_START_MONTH:
            return cls(day.year)
        return cls(day.year - 1)


@dataclass(frozen=True)
class FiscalQuarter:
    """One quarter of a fiscal year"""
    fiscal_year_start: int
    number: int

    def __post_init__(self):
        if self.number not in _QUARTER_MONTHS:
            raise ValueError(f"Quarter number must be 1-4, got {self.number}")

    @property
    def fiscal_year(self) -> FiscalYear:
        return FiscalYear(self.fiscal_year_start)

    @property
    def _calendar_year(self) -> int:
        return self.fiscal_year_start + 1 if self.number == 4 else self.fiscal_year_start

    @property
    def start(self) -> date:
        start_month, _, _ = _QUARTER_MONTHS[self.number]
        return date(self._calendar_year, start_month, 1)

    @property
    def end(self) -> date:
        _, end_month, end_day = _QUARTER_MONTHS[self.number]
        return date(self._calendar_year, end_month, end_day)

    @property
    def label(self) -> str:
        return f"Q{self.number} FY {self.fiscal_year.label}"

    @classmethod
    def for_date(cls, day: date) -> 'FiscalQuarter':
        fiscal_year = FiscalYear.for_date(day)
        for number, (start_month, end_month, _) in _QUARTER_MONTHS.items():
            if start_month <= day.month <= end_month:
                return cls(fiscal_year.start_year, number)
        raise ValueError(f"No fiscal quarter for {day}")  # unreachable for valid dates


def fiscal_year_for(day: date) -> FiscalYear:
    return FiscalYear.for_date(day)


def fiscal_quarter_for(day: date) -> FiscalQuarter:
    return FiscalQuarter.for_date(day)


def fiscal_year_options(dates: Iterable[Optional[date]], today: date, floor: int = 2013) -> List[int]:
    """
    Fiscal years offered in report selectors, newest first.

    Every fiscal year containing one of ``dates`` is included, plus the
    current one. Years before ``floor`` are dropped.
    """
    years = {FiscalYear.for_date(today).start_year}
    for day in dates:
        if day is not None:
            years.add(FiscalYear.for_date(day).start_year)
    return sorted((year for year in years if year >= floor), reverse=True)
