"""
Excel Export Utilities using Pandas
===================================

Loan application exports for staff
"""

from django.http import HttpResponse
from django.utils import timezone
import pandas as pd
from io import BytesIO

from cooperative.utils.money import MoneyCalculator


LOAN_COLUMNS = [
    'Reference', 'Member No.', 'Member', 'Loan Type', 'Principal (₦)',
    'Rate (%)', 'Term (Months)', 'Monthly Payment (₦)', 'Total Repayable (₦)',
    'Amount Paid (₦)', 'Status', 'Guarantors', 'Applied On',
]

MONEY_COLUMNS = ['Principal (₦)', 'Monthly Payment (₦)', 'Total Repayable (₦)', 'Amount Paid (₦)']


def create_excel_response(filename='report.xlsx'):
    """Create an HTTP response for Excel file download"""
    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def loans_dataframe(loans):
    """One row per loan application"""
    rows = []
    for loan in loans:
        rows.append({
            'Reference': loan.reference,
            'Member No.': loan.member.member_number,
            'Member': loan.member.get_full_name(),
            'Loan Type': loan.loan_type.name,
            'Principal (₦)': float(loan.principal),
            'Rate (%)': float(loan.interest_rate),
            'Term (Months)': loan.term_months,
            'Monthly Payment (₦)': float(loan.monthly_payment),
            'Total Repayable (₦)': float(loan.total_repayable),
            'Amount Paid (₦)': float(loan.amount_paid),
            'Status': loan.get_status_display(),
            'Guarantors': loan.guarantors.count(),
            'Applied On': timezone.localtime(loan.application_date).strftime('%Y-%m-%d'),
        })
    return pd.DataFrame(rows, columns=LOAN_COLUMNS)


def export_loans_excel(loans, title='LOAN APPLICATIONS'):
    """Export loan applications to Excel"""
    loans = list(loans)
    df = loans_dataframe(loans)

    total_principal = MoneyCalculator.sum_amounts(*(loan.principal for loan in loans))
    totals_row = pd.DataFrame([{
        'Reference': 'TOTAL',
        'Principal (₦)': float(total_principal),
    }], columns=LOAN_COLUMNS)
    df = pd.concat([df, totals_row], ignore_index=True) if loans else totals_row

    output = BytesIO()
    writer = pd.ExcelWriter(output, engine='openpyxl')
    df.to_excel(writer, sheet_name='Loans', index=False)
    worksheet = writer.sheets['Loans']

    from openpyxl.styles import Font, PatternFill, Alignment
    from openpyxl.utils import get_column_letter

    # Header styling
    header_fill = PatternFill(start_color='15803D', end_color='15803D', fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF', size=11)

    for col_num in range(1, len(df.columns) + 1):
        cell = worksheet.cell(row=1, column=col_num)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center', vertical='center')

    # Totals row styling
    totals_fill = PatternFill(start_color='DCFCE7', end_color='DCFCE7', fill_type='solid')
    last_row = len(df) + 1
    for col_num in range(1, len(df.columns) + 1):
        cell = worksheet.cell(row=last_row, column=col_num)
        cell.fill = totals_fill
        cell.font = Font(bold=True, size=11)

    # Number formatting for currency columns
    for name in MONEY_COLUMNS:
        column = LOAN_COLUMNS.index(name) + 1
        for row in range(2, last_row + 1):
            worksheet.cell(row=row, column=column).number_format = '#,##0.00'

    for col_num, name in enumerate(LOAN_COLUMNS, 1):
        worksheet.column_dimensions[get_column_letter(col_num)].width = max(14, len(name) + 4)

    # Report header
    worksheet.insert_rows(1, 2)
    worksheet.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(LOAN_COLUMNS))
    worksheet.merge_cells(start_row=2, start_column=1, end_row=2, end_column=len(LOAN_COLUMNS))

    title_cell = worksheet['A1']
    title_cell.value = title
    title_cell.font = Font(bold=True, size=16, color='15803D')
    title_cell.alignment = Alignment(horizontal='center')

    generated_cell = worksheet['A2']
    generated_cell.value = (
        f'Generated: {timezone.localtime().strftime("%B %d, %Y %H:%M")} | '
        f'{len(loans)} application(s) | Total principal {MoneyCalculator.format_currency(total_principal)}'
    )
    generated_cell.alignment = Alignment(horizontal='center')

    writer.close()
    output.seek(0)

    filename = f'loan_applications_{timezone.localdate().strftime("%Y%m%d")}.xlsx'
    response = create_excel_response(filename)
    response.write(output.read())
    return response
