# =============================================================================
# utils/config.py - Configuration management
# =============================================================================

import os
from typing import Optional, List, Tuple
from dotenv import load_dotenv

from core.models import (
    DEFAULT_SECURITY_DEPARTMENTS, USAGE_THRESHOLD_MIN, USAGE_THRESHOLD_MAX, USAGE_THRESHOLD_STEP,
)

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


class Config:
    """Configuration management"""

    def __init__(self):
        load_dotenv()

    @property
    def log_level(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def log_dir(self) -> str:
        return os.getenv("LOG_DIR", "logs")

    @property
    def default_usage_threshold(self) -> Optional[float]:
        value = os.getenv("DEFAULT_USAGE_THRESHOLD", "20")
        try:
            return float(value)
        except ValueError:
            return None

    @property
    def security_departments(self) -> Tuple[str, ...]:
        value = os.getenv("SECURITY_DEPARTMENTS")
        if not value:
            return DEFAULT_SECURITY_DEPARTMENTS
        return tuple(d.strip() for d in value.split(',') if d.strip())

    @property
    def license_catalog_file(self) -> Optional[str]:
        return os.getenv("LICENSE_CATALOG_FILE") or None

    @property
    def secret_key(self) -> str:
        return os.getenv("FLASK_SECRET_KEY", "change-me")

    @property
    def port(self) -> int:
        try:
            return int(os.getenv("PORT", "5000"))
        except ValueError:
            return 5000

    @property
    def debug(self) -> bool:
        return os.getenv("FLASK_DEBUG", "False").lower() == "true"

    @property
    def max_upload_mb(self) -> int:
        try:
            return int(os.getenv("MAX_UPLOAD_MB", "16"))
        except ValueError:
            return 16

    def validate(self) -> bool:
        """Validate that every setting has a usable value"""
        return not self.get_invalid_vars()

    def get_invalid_vars(self) -> List[str]:
        """Get list of settings that fail validation"""
        invalid = []

        if self.log_level not in LOG_LEVELS:
            invalid.append("LOG_LEVEL")

        threshold = self.default_usage_threshold
        if (threshold is None
                or not USAGE_THRESHOLD_MIN <= threshold <= USAGE_THRESHOLD_MAX
                or threshold % USAGE_THRESHOLD_STEP):
            invalid.append("DEFAULT_USAGE_THRESHOLD")

        if self.license_catalog_file and not os.path.exists(self.license_catalog_file):
            invalid.append("LICENSE_CATALOG_FILE")

        return invalid
