"""
Extraction of narrower values from action output.

Supported kinds:
- jq / xpath: delegated to the registered action of the same name,
  called with [data, path]
- regex: first match, capture group 1 unless another group is requested
- csv: delimited text or pre-parsed rows, optionally narrowed to a cell,
  a column or a filtered row set
"""

import csv
import io
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from stepwise.actions.registry import ActionRegistry
from stepwise.exceptions import ExtractionError
from stepwise.results import ActionStatus
from stepwise.types import ExtractConfig
from stepwise.variables.store import VariableStore, to_string


logger = logging.getLogger(__name__)


FILTER_OPERATORS = ('==', '=', '!=', '<>', '>', '<', '>=', '<=', 'contains')


class Extractor:
    """Applies an ExtractConfig to action output data."""

    def __init__(self, registry: ActionRegistry, variables: VariableStore):
        self.registry = registry
        self.variables = variables

    def extract(self, data: Any, config: ExtractConfig) -> Any:
        """
        Extract a value from data.

        Raises:
            ExtractionError: If the data cannot be narrowed as configured
        """
        if data is None:
            raise ExtractionError('EXTRACTION_NO_DATA', "no data to extract from")

        logger.debug(f"Extracting with {config.type} (path={config.path!r})")

        if config.type in ('jq', 'xpath'):
            return self._delegate(config.type, data, config.path)
        if config.type == 'regex':
            return self._extract_regex(data, config)
        if config.type == 'csv':
            return self._extract_csv(data, config)
        raise ExtractionError('UNSUPPORTED_EXTRACTION_TYPE', f"unsupported extraction type: {config.type}")

    def _delegate(self, action_name: str, data: Any, path: str) -> Any:
        action = self.registry.get(action_name)
        if action is None:
            raise ExtractionError(
                'DELEGATED_EXTRACTION_FAILED',
                f"{action_name} extraction requires a registered '{action_name}' action"
            )
        result = action([data, path], {}, self.variables)
        if result.status != ActionStatus.PASSED:
            raise ExtractionError(
                'DELEGATED_EXTRACTION_FAILED',
                f"{action_name} extraction failed: {result.message()}"
            )
        return result.data

    def _extract_regex(self, data: Any, config: ExtractConfig) -> str:
        try:
            pattern = re.compile(config.path)
        except re.error as e:
            raise ExtractionError('INVALID_REGEX_PATTERN', f"invalid regex pattern {config.path!r}: {e}") from e

        text = to_string(data)
        match = pattern.search(text)
        if match is None:
            raise ExtractionError('NO_REGEX_MATCH', f"no match found for pattern {config.path!r}")

        group = 1 if config.group is None else config.group
        if group > pattern.groups:
            raise ExtractionError(
                'INVALID_CAPTURE_GROUP',
                f"invalid capture group (group {group}, only {pattern.groups} groups)"
            )
        value = match.group(group)
        return "" if value is None else value

    def _extract_csv(self, data: Any, config: ExtractConfig) -> Any:
        headers, rows = self._load_rows(data, config)
        if not rows:
            raise ExtractionError('CSV_NO_DATA', "no data rows found in CSV")

        if config.row is not None:
            if config.row >= len(rows):
                raise ExtractionError(
                    'CSV_INVALID_SELECTION',
                    f"row index {config.row} out of range (0-{len(rows) - 1})"
                )
            row = rows[config.row]
            if config.column is None:
                return row
            return row.get(self._resolve_column(config.column, headers), "")

        if config.column is not None:
            name = self._resolve_column(config.column, headers)
            return [row.get(name, "") for row in rows]

        if config.filter:
            column, operator, value = self._parse_filter(config.filter, headers)
            return [row for row in rows if _matches(row.get(column, ""), operator, value)]

        return rows

    def _load_rows(self, data: Any, config: ExtractConfig) -> Tuple[List[str], List[Dict[str, str]]]:
        """Accept CSV text, a list of row dicts, or {"format": "csv", "content": rows}."""
        if isinstance(data, dict) and data.get('format') == 'csv' and 'content' in data:
            data = data['content']

        if isinstance(data, list):
            if all(isinstance(row, dict) for row in data):
                headers: List[str] = []
                for row in data:
                    headers.extend(str(k) for k in row if str(k) not in headers)
                return headers, [{str(k): v for k, v in row.items()} for row in data]
            if all(isinstance(row, (list, tuple)) for row in data):
                return self._rows_from_records([[to_string(c) for c in row] for row in data], config)
            raise ExtractionError('CSV_PARSE_ERROR', "structured CSV content must be a list of rows")

        text = to_string(data)
        if not text.strip():
            raise ExtractionError('CSV_NO_DATA', "CSV data is empty")
        try:
            reader = csv.reader(io.StringIO(text), delimiter=config.delimiter, skipinitialspace=True)
            records = [record for record in reader if record]
        except csv.Error as e:
            raise ExtractionError('CSV_PARSE_ERROR', f"failed to parse CSV: {e}") from e
        return self._rows_from_records(records, config)

    def _rows_from_records(
        self,
        records: List[List[str]],
        config: ExtractConfig
    ) -> Tuple[List[str], List[Dict[str, str]]]:
        if not records:
            raise ExtractionError('CSV_NO_DATA', "CSV data is empty")

        if config.has_header:
            headers = [h.strip() for h in records[0]]
            body = records[1:]
        else:
            width = max(len(record) for record in records)
            headers = [f"column_{i}" for i in range(width)]
            body = records

        rows = []
        for record in body:
            rows.append({header: (record[i] if i < len(record) else "") for i, header in enumerate(headers)})
        return headers, rows

    def _resolve_column(self, column: str, headers: List[str]) -> str:
        """Match a column by header name first, then by numeric index."""
        if column in headers:
            return column
        try:
            index = int(column)
        except ValueError:
            raise ExtractionError(
                'CSV_INVALID_SELECTION',
                f"column {column!r} not found; available columns: {', '.join(headers)}"
            ) from None
        if index < 0 or index >= len(headers):
            raise ExtractionError(
                'CSV_INVALID_SELECTION',
                f"column index {index} out of range (0-{len(headers) - 1})"
            )
        return headers[index]

    def _parse_filter(self, expression: str, headers: List[str]) -> Tuple[str, str, str]:
        parts = expression.split(None, 2)
        if len(parts) != 3:
            raise ExtractionError(
                'INVALID_FILTER',
                f"invalid filter {expression!r}; expected 'column operator value'"
            )
        column, operator, value = parts
        if operator not in FILTER_OPERATORS:
            raise ExtractionError('INVALID_FILTER', f"unsupported filter operator: {operator}")
        return self._resolve_column(column, headers), operator, _unquote(value)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _matches(cell: Any, operator: str, expected: str) -> bool:
    actual = to_string(cell).strip()
    if operator == 'contains':
        return expected in actual

    numbers: Optional[Tuple[float, float]]
    try:
        numbers = float(actual), float(expected)
    except ValueError:
        numbers = None
    left, right = numbers if numbers is not None else (actual, expected)

    if operator in ('==', '='):
        return left == right
    if operator in ('!=', '<>'):
        return left != right
    if operator == '>':
        return left > right
    if operator == '<':
        return left < right
    if operator == '>=':
        return left >= right
    return left <= right
