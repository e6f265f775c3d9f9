# =============================================================================
# utils/roster.py - Roster and mailbox import
# =============================================================================

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from core.catalog import LicenseCatalog, DEFAULT_CATALOG
from core.models import UserRecord, derive_status
from utils.csv_utils import CSVHandler


class RosterError(ValueError):
    """Raised when a roster file cannot be mapped to user records"""


EXCEL_EXTENSIONS = {'.xlsx', '.xls'}

# Canonical field -> accepted header spellings (lowercase, alphanumerics only)
HEADER_ALIASES: Dict[str, List[str]] = {
    'id': ['id', 'objectid', 'userid', 'employeeid'],
    'display_name': ['displayname', 'name', 'fullname', 'username'],
    'upn': ['upn', 'userprincipalname', 'email', 'mail', 'emailaddress'],
    'department': ['department', 'dept', 'team'],
    'licenses': ['licenses', 'assignedlicenses', 'license', 'skus', 'assignedproducts'],
    'usage_gb': ['usagegb', 'storageusedgb', 'mailboxusagegb', 'usedgb'],
    'max_gb': ['maxgb', 'quotagb', 'mailboxquotagb', 'prohibitsendreceivequotagb', 'storagelimitgb'],
}

# ';' and ',' always separate; '+' only when written without surrounding spaces,
# as in admin-center exports ("SPE_E5+VISIOCLIENT")
LICENSE_SEPARATOR = re.compile(r'\s*[;,]\s*|(?<=\S)\+(?=\S)')

# "1,234" or "12,345.67"; a lone comma with no dot is a decimal comma ("1,5")
THOUSANDS_GROUPED = re.compile(r'^-?\d{1,3}(,\d{3})+(\.\d+)?$')


def _header_key(header: str) -> str:
    return re.sub(r'[^a-z0-9]', '', str(header).lower())


def _to_float(value: Any) -> float:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return 0.0
    text = str(value).strip()
    if THOUSANDS_GROUPED.match(text):
        text = text.replace(',', '')
    elif text.count(',') == 1 and '.' not in text:
        text = text.replace(',', '.')
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def split_licenses(value: Any) -> List[str]:
    """Split a license cell into identifiers"""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return []
    return [part.strip() for part in LICENSE_SEPARATOR.split(str(value)) if part and part.strip()]


class RosterLoader:
    """Builds UserRecords from CSV or Excel exports"""

    def __init__(self, catalog: Optional[LicenseCatalog] = None):
        self.catalog = catalog or DEFAULT_CATALOG
        self.logger = logging.getLogger(self.__class__.__name__)

    def read_rows(self, file_path: str, sheet_name: Optional[str] = None
                  ) -> Tuple[List[Dict[str, Any]], List[str]]:
        """Read raw rows from a CSV or Excel file"""
        if Path(file_path).suffix.lower() in EXCEL_EXTENSIONS:
            try:
                df = pd.read_excel(file_path, sheet_name=sheet_name or 0)
            except FileNotFoundError:
                self.logger.error(f"Input file {file_path} not found")
                raise
            df.columns = [str(c).strip() for c in df.columns]
            df = df.dropna(how='all').fillna('')
            self.logger.info(f"Read {len(df)} rows from {file_path}")
            return df.to_dict('records'), list(df.columns)
        return CSVHandler.read_csv(file_path)

    def map_headers(self, headers: List[str]) -> Dict[str, str]:
        """Map canonical field names to the file's actual headers"""
        by_key = {_header_key(h): h for h in headers}
        mapping = {}
        for field_name, aliases in HEADER_ALIASES.items():
            for alias in aliases:
                if alias in by_key:
                    mapping[field_name] = by_key[alias]
                    break
        return mapping

    def rows_to_users(self, rows: List[Dict[str, Any]], headers: List[str]) -> List[UserRecord]:
        mapping = self.map_headers(headers)
        if 'licenses' not in mapping or not ({'upn', 'display_name'} & mapping.keys()):
            raise RosterError(
                f"Roster needs a licenses column and a UPN or display name column; "
                f"found: {', '.join(headers)}"
            )

        def cell(row, field_name):
            column = mapping.get(field_name)
            value = row.get(column, '') if column else ''
            return '' if value is None else value

        users = []
        skipped = 0
        for index, row in enumerate(rows, start=1):
            licenses = split_licenses(cell(row, 'licenses'))
            if not licenses:
                skipped += 1
                continue

            upn = str(cell(row, 'upn')).strip()
            usage_gb = _to_float(cell(row, 'usage_gb'))
            max_gb = _to_float(cell(row, 'max_gb'))
            users.append(UserRecord(
                id=str(cell(row, 'id')).strip() or upn or str(index),
                display_name=str(cell(row, 'display_name')).strip() or upn,
                upn=upn,
                department=str(cell(row, 'department')).strip(),
                licenses=tuple(licenses),
                usage_gb=usage_gb,
                max_gb=max_gb,
                cost=self.catalog.compute_cost(self.catalog.normalize(licenses)),
                status=derive_status(usage_gb, max_gb),
            ))

        if skipped:
            self.logger.info(f"Skipped {skipped} unlicensed users")
        self.logger.info(f"Loaded {len(users)} licensed users")
        return users

    def load(self, file_path: str, sheet_name: Optional[str] = None) -> List[UserRecord]:
        """Load licensed users from a roster file"""
        rows, headers = self.read_rows(file_path, sheet_name)
        return self.rows_to_users(rows, headers)

    def load_mailbox_usage(self, file_path: str) -> Dict[str, Tuple[float, float]]:
        """Read {upn: (usage_gb, max_gb)} from a mailbox usage export"""
        rows, headers = self.read_rows(file_path)
        mapping = self.map_headers(headers)
        if 'upn' not in mapping:
            raise RosterError(f"Mailbox file needs a UPN column; found: {', '.join(headers)}")

        usage = {}
        for row in rows:
            upn = str(row.get(mapping['upn'], '')).strip().lower()
            if not upn:
                continue
            usage[upn] = (
                _to_float(row.get(mapping.get('usage_gb', ''), 0)),
                _to_float(row.get(mapping.get('max_gb', ''), 0)),
            )
        self.logger.info(f"Loaded mailbox usage for {len(usage)} mailboxes")
        return usage

    def merge_mailbox_usage(self, users: List[UserRecord],
                            usage: Dict[str, Tuple[float, float]]) -> List[UserRecord]:
        """New records with mailbox figures replaced where the UPN matches"""
        merged = []
        matched = 0
        for user in users:
            figures = usage.get(user.upn.lower())
            if figures is None:
                merged.append(user)
                continue
            matched += 1
            usage_gb, max_gb = figures
            merged.append(replace(user, usage_gb=usage_gb, max_gb=max_gb,
                                  status=derive_status(usage_gb, max_gb)))
        self.logger.info(f"Matched mailbox usage for {matched}/{len(users)} users")
        return merged
