"""
Excel Exporter Module.

This module writes transaction validation results to an Excel workbook
for the accounts payable team. Uses openpyxl for modern Excel format
support.

Features:
    - Formatted headers
    - Auto-column width
    - Highlighted failed and critical rows
    - Summary sheet

Author: AP Automation Team
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.helpers import ensure_directory, generate_timestamp, truncate
from ap_assist.utils.exceptions import ReportError

# Initialize module logger
logger = get_logger(__name__)

# Excel refuses cell values longer than this
MAX_CELL_LENGTH = 32767


class ExcelExporter:
    """
    Exports transaction validation results to Excel format.

    Attributes:
        output_dir: Directory for output files.
        sheet_name: Title of the results sheet.

    Example:
        >>> exporter = ExcelExporter()
        >>> filepath = exporter.export(results, summary)
        >>> print(f"Saved to: {filepath}")
    """

    # Column definitions: (header, attribute)
    COLUMNS = [
        ('Transaction', 'tran_id'),
        ('Record Type', 'record_type'),
        ('Record ID', 'record_id'),
        ('Status', 'status'),
        ('Passed', 'is_passed'),
        ('Critical Issues', 'has_critical_issues'),
        ('Flagged', 'flagged'),
        ('Duration (s)', 'duration'),
        ('Model', 'model'),
        ('Error', 'error'),
        ('Report', 'report'),
    ]

    FAIL_FILL = PatternFill(start_color="F8CBAD", end_color="F8CBAD", fill_type="solid")
    CRITICAL_FILL = PatternFill(start_color="FF7C80", end_color="FF7C80", fill_type="solid")

    def __init__(self, output_dir: Optional[str] = None) -> None:
        """Initialize the Excel exporter with configuration."""
        self.output_dir = Path(output_dir or get_config("paths.output_dir", "outputs"))
        self.sheet_name = get_config("output.excel.sheet_name", "Validation Results")

        logger.debug(f"ExcelExporter initialized (output_dir: {self.output_dir})")

    def export(
        self,
        results: List[Any],
        summary: Optional[Any] = None,
        filename: Optional[str] = None,
        output_dir: Optional[str] = None
    ) -> str:
        """
        Export validation results to an Excel file.

        Args:
            results: TransactionCheck objects.
            summary: Optional ValidationSummary written to a second sheet.
            filename: Output filename. If None, auto-generated.
            output_dir: Output directory. If None, uses configured dir.

        Returns:
            Path to the created Excel file.

        Raises:
            ReportError: If there is nothing to export or saving fails.
        """
        if not results:
            raise ReportError("excel", "No results to export")

        out_dir = ensure_directory(output_dir or self.output_dir)
        filepath = out_dir / (filename or self.get_default_filename())

        try:
            workbook = openpyxl.Workbook()
            self._create_results_sheet(workbook, results)
            if summary is not None:
                self._create_summary_sheet(workbook, summary)
            workbook.save(filepath)

        except (OSError, ValueError) as e:
            logger.error(f"Excel export failed: {e}")
            raise ReportError(str(filepath), str(e)) from e

        logger.info(f"Excel file saved: {filepath} ({len(results)} records)")
        return str(filepath)

    def _cell_value(self, result: Any, field_name: str) -> Any:
        if field_name == 'status':
            if not result.success:
                return 'ERROR'
            return 'PASSED' if result.is_passed else 'FAILED'
        if field_name == 'duration':
            return round(getattr(result, 'duration', 0.0) or 0.0, 2)

        value = getattr(result, field_name, '')
        if isinstance(value, bool):
            return 'Yes' if value else 'No'
        if value is None:
            return ''
        if isinstance(value, str):
            return truncate(value, MAX_CELL_LENGTH)
        return value

    def _create_results_sheet(self, workbook, results: List[Any]) -> None:
        """
        Create the main sheet with one row per transaction.

        Args:
            workbook: openpyxl Workbook instance.
            results: List of validation results.
        """
        sheet = workbook.active
        sheet.title = self.sheet_name

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        header_alignment = Alignment(horizontal="center", vertical="center")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        for col, (header_name, _) in enumerate(self.COLUMNS, 1):
            cell = sheet.cell(row=1, column=col, value=header_name)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = header_alignment
            cell.border = thin_border

        for row_num, result in enumerate(results, 2):
            fill = None
            if getattr(result, 'has_critical_issues', False):
                fill = self.CRITICAL_FILL
            elif not result.success or not result.is_passed:
                fill = self.FAIL_FILL

            for col, (_, field_name) in enumerate(self.COLUMNS, 1):
                cell = sheet.cell(row=row_num, column=col, value=self._cell_value(result, field_name))
                cell.border = thin_border
                if field_name == 'report':
                    cell.alignment = Alignment(wrap_text=True, vertical="top")
                if fill is not None:
                    cell.fill = fill

        for col, (header_name, field_name) in enumerate(self.COLUMNS, 1):
            column_letter = get_column_letter(col)
            if field_name == 'report':
                sheet.column_dimensions[column_letter].width = 80
                continue

            max_length = len(header_name)
            for row in range(2, len(results) + 2):
                cell_value = sheet.cell(row=row, column=col).value
                if cell_value:
                    max_length = max(max_length, len(str(cell_value)))
            sheet.column_dimensions[column_letter].width = min(max_length + 2, 50)

        sheet.freeze_panes = 'A2'

    def _create_summary_sheet(self, workbook, summary: Any) -> None:
        """
        Create a sheet with the run summary counters.

        Args:
            workbook: openpyxl Workbook instance.
            summary: ValidationSummary (or a dictionary of counters).
        """
        sheet = workbook.create_sheet(title="Summary")

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="548235", end_color="548235", fill_type="solid")

        for col, header in enumerate(("Metric", "Value"), 1):
            cell = sheet.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        values: Dict[str, Any] = summary if isinstance(summary, dict) else summary.to_dict()
        for row_num, (metric, value) in enumerate(values.items(), 2):
            sheet.cell(row=row_num, column=1, value=metric.replace('_', ' ').title())
            sheet.cell(row=row_num, column=2, value=value)

        sheet.column_dimensions['A'].width = 24
        sheet.column_dimensions['B'].width = 16

    def get_default_filename(self) -> str:
        """
        Generate a default filename with timestamp.

        Returns:
            Default filename string.
        """
        timestamp = generate_timestamp()
        pattern = get_config(
            "output.excel.filename_pattern",
            "transaction_validation_{timestamp}.xlsx"
        )
        return pattern.format(timestamp=timestamp)
