# =============================================================================
# utils/csv_utils.py - CSV utilities
# =============================================================================

import codecs
import csv
from typing import List, Dict, Any, Optional, Tuple
import logging

# First line written by Windows PowerShell's Export-Csv unless -NoTypeInformation is given
POWERSHELL_TYPE_PREFIX = '#TYPE '


class CSVHandler:
    """Reads admin-center and PowerShell CSV exports, writes result files"""

    @staticmethod
    def detect_encoding(file_path: str, default: str = 'utf-8-sig') -> str:
        """UTF-16 when the file starts with its byte order mark, otherwise default"""
        with open(file_path, 'rb') as file:
            head = file.read(2)
        if head in (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE):
            return 'utf-16'
        return default

    @staticmethod
    def read_csv(file_path: str, encoding: Optional[str] = None,
                 delimiter: str = ',') -> Tuple[List[Dict[str, Any]], List[str]]:
        """Read CSV rows as dictionaries keyed by trimmed header, plus the header list"""
        logger = logging.getLogger(__name__)

        try:
            encoding = encoding or CSVHandler.detect_encoding(file_path)
            with open(file_path, 'r', newline='', encoding=encoding) as file:
                first_line = file.readline()
                if first_line.startswith(POWERSHELL_TYPE_PREFIX):
                    logger.debug(f"Skipping PowerShell type line in {file_path}")
                else:
                    file.seek(0)

                reader = csv.DictReader(file, delimiter=delimiter)
                headers = [h.strip() for h in (reader.fieldnames or [])]
                data = [{(k or '').strip(): v for k, v in row.items()} for row in reader]

            logger.debug(f"CSV headers ({encoding}): {headers[:10]}")
            logger.info(f"Read {len(data)} rows from {file_path}")
            return data, headers

        except FileNotFoundError:
            logger.error(f"Input file {file_path} not found")
            raise
        except Exception as e:
            logger.error(f"Error reading CSV {file_path}: {e}")
            raise

    @staticmethod
    def write_csv(rows: List[Dict[str, Any]], output_path: str,
                  fieldnames: Optional[List[str]] = None) -> None:
        """Write result rows; keys outside fieldnames are dropped"""
        logger = logging.getLogger(__name__)

        if not rows:
            logger.warning(f"No rows to write to {output_path}")
            return

        fieldnames = fieldnames or list(rows[0].keys())

        try:
            with open(output_path, 'w', newline='', encoding='utf-8') as file:
                writer = csv.DictWriter(file, fieldnames=fieldnames, extrasaction='ignore')
                writer.writeheader()
                writer.writerows(rows)

            logger.info(f"Wrote {len(rows)} rows to {output_path}")

        except OSError as e:
            logger.error(f"Error writing CSV {output_path}: {e}")
            raise
