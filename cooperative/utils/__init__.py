"""
Cooperative Utilities Package
=============================

Provides utility functions for:
- Money handling (Decimal rounding, Naira formatting, amortisation)
- Date and reference-number helpers
- Excel export (Pandas/openpyxl)

Import directly from submodules to avoid circular imports:
    from cooperative.utils.money import MoneyCalculator
    from cooperative.utils.helpers import months_between
    from cooperative.utils.excel_export import export_loans_excel
"""
