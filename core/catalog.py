# =============================================================================
# core/catalog.py - License catalog and normalizer
# =============================================================================

import json
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from core.models import LicenseInfo

logger = logging.getLogger(__name__)


# Display names used by the rule engine
M365_E5 = "Microsoft 365 E5"
M365_E3 = "Microsoft 365 E3"
M365_F1 = "Microsoft 365 F1"
M365_F3 = "Microsoft 365 F3"
O365_E5 = "Office 365 E5"
O365_E3 = "Office 365 E3"
O365_E1 = "Office 365 E1"
O365_F3 = "Office 365 F3"
BUSINESS_BASIC = "Microsoft 365 Business Basic"
BUSINESS_STANDARD = "Microsoft 365 Business Standard"
BUSINESS_PREMIUM = "Microsoft 365 Business Premium"
APPS_FOR_BUSINESS = "Microsoft 365 Apps for business"
APPS_FOR_ENTERPRISE = "Microsoft 365 Apps for enterprise"

DEFENDER_O365_P1 = "Defender for Office 365 P1"
DEFENDER_O365_P2 = "Defender for Office 365 P2"
DEFENDER_ENDPOINT_P1 = "Defender for Endpoint P1"
DEFENDER_ENDPOINT_P2 = "Defender for Endpoint P2"
DEFENDER_BUSINESS = "Defender for Business"
DEFENDER_IDENTITY = "Defender for Identity"
DEFENDER_CLOUD_APPS = "Defender for Cloud Apps"
EMS_E3 = "Enterprise Mobility + Security E3"
EMS_E5 = "Enterprise Mobility + Security E5"
ENTRA_P1 = "Entra ID P1"
ENTRA_P2 = "Entra ID P2"
INTUNE_P1 = "Microsoft Intune Plan 1"
AIP_P1 = "Azure Information Protection P1"
AIP_P2 = "Azure Information Protection P2"
E5_SECURITY = "Microsoft 365 E5 Security"
E5_COMPLIANCE = "Microsoft 365 E5 Compliance"
WINDOWS_E3 = "Windows 10/11 Enterprise E3"
WINDOWS_E5 = "Windows 10/11 Enterprise E5"
PHONE_SYSTEM = "Teams Phone System"
AUDIO_CONFERENCING = "Audio Conferencing"

VISIO_P2 = "Visio Plan 2"
VISIO_P1 = "Visio Plan 1"
PROJECT_P5 = "Project Plan 5"
PROJECT_P3 = "Project Plan 3"
PROJECT_P1 = "Project Plan 1"
POWER_BI_PRO = "Power BI Pro"
POWER_BI_PPU = "Power BI Premium Per User"

EXCHANGE_P1 = "Exchange Online Plan 1"
EXCHANGE_P2 = "Exchange Online Plan 2"
EXCHANGE_KIOSK = "Exchange Online Kiosk"
EXCHANGE_ESSENTIALS = "Exchange Online Essentials"
SHAREPOINT_P1 = "SharePoint Online Plan 1"
SHAREPOINT_P2 = "SharePoint Online Plan 2"
ONEDRIVE_P1 = "OneDrive for Business P1"
ONEDRIVE_P2 = "OneDrive for Business P2"

M365_COPILOT = "Microsoft 365 Copilot"
GITHUB_COPILOT = "GitHub Copilot"

TEAMS_EXPLORATORY = "Teams Exploratory"
TEAMS_FREE = "Microsoft Teams (Free)"
TEAMS_TRIAL = "Microsoft Teams Trial"
FLOW_FREE = "Power Automate Free"
POWERAPPS_TRIAL = "Power Apps Trial"
PVA_TRIAL = "Power Virtual Agents Trial"
POWER_BI_FREE = "Power BI Free"


# (display name, monthly cost, is suite, SKU / export aliases)
LICENSE_TABLE: List[Tuple[str, float, bool, Tuple[str, ...]]] = [
    # Suites
    (M365_E5, 57.00, True, ("SPE_E5",)),
    (M365_E3, 36.00, True, ("SPE_E3",)),
    (O365_E1, 10.00, True, ("STANDARDPACK",)),
    (M365_F1, 2.25, True, ("SPE_F1", "M365_F1", "M365_F1_COMM")),
    (M365_F3, 8.00, True, ("M365_F3",)),
    (O365_F3, 4.00, True, ("DESKLESSPACK",)),
    (O365_E5, 38.00, True, ("ENTERPRISEPREMIUM",)),
    (O365_E3, 23.00, True, ("ENTERPRISEPACK", "ENTERPRISEWITHSCAL")),
    (BUSINESS_BASIC, 6.00, True, ("O365_BUSINESS_ESSENTIALS", "SMB_BUSINESS_ESSENTIALS")),
    (BUSINESS_STANDARD, 12.50, True, ("O365_BUSINESS_PREMIUM", "SMB_BUSINESS_PREMIUM")),
    (BUSINESS_PREMIUM, 22.00, True, ("SPB",)),
    (APPS_FOR_BUSINESS, 12.50, True, ("O365_BUSINESS", "O365_BUSINESS_APPS")),
    (APPS_FOR_ENTERPRISE, 12.00, True, ("OFFICESUBSCRIPTION",)),

    # Security and compliance
    ("Microsoft 365 F5 Security", 12.00, False, ("SPE_F5_SEC",)),
    ("Microsoft 365 F5 Compliance", 12.00, False, ("SPE_F5_COMP",)),
    ("Microsoft 365 F5 Security + Compliance", 12.00, False, ("M365_SECURITY_COMPLIANCE_FOR_FLW",)),
    (DEFENDER_O365_P1, 2.00, False, ("ATP_ENTERPRISE", "ATP_ENTERPRISE_FACULTY")),
    (DEFENDER_O365_P2, 5.00, False, ("THREAT_INTELLIGENCE",)),
    (DEFENDER_ENDPOINT_P2, 5.20, False, ("WIN_DEF_ATP", "MDATP_XPLAT")),
    (DEFENDER_ENDPOINT_P1, 3.00, False, ("DEFENDER_ENDPOINT_P1",)),
    (DEFENDER_BUSINESS, 3.00, False, ("MDE_SMB",)),
    (DEFENDER_IDENTITY, 5.50, False, ("ATA", "DEFENDER_IDENTITY")),
    (DEFENDER_CLOUD_APPS, 3.50, False, ("ADALLOM_STANDALONE",)),
    (EMS_E3, 11.60, False, ("EMS_E3",)),
    (EMS_E5, 16.40, False, ("EMS_E5", "EMSPREMIUM")),
    (ENTRA_P1, 6.00, False, ("AAD_PREMIUM",)),
    (ENTRA_P2, 9.00, False, ("AAD_PREMIUM_P2",)),
    (INTUNE_P1, 8.00, False, ("INTUNE_A", "INTUNE_SMB")),
    (AIP_P1, 2.00, False, ("RIGHTSMANAGEMENT", "RMS_S_PREMIUM")),
    ("Rights Management Adhoc", 0.00, False, ("RIGHTSMANAGEMENT_ADHOC",)),
    (AIP_P2, 5.00, False, ("RMS_S_PREMIUM2",)),
    (E5_SECURITY, 12.00, False, ("IDENTITY_THREAT_PROTECTION", "IDENTITY_THREAT_PROTECTION_FOR_EMS_E5")),
    (E5_COMPLIANCE, 12.00, False, ("INFORMATION_PROTECTION_COMPLIANCE",)),
    ("Communication Compliance", 0.00, False, ("MICROSOFT_COMMUNICATION_COMPLIANCE",)),

    # Voice and meetings
    (PHONE_SYSTEM, 8.00, False, ("MCOEV", "MCOEV_GOV")),
    ("Teams Phone System Virtual User", 0.00, False, ("MCOEV_VIRTUALUSER", "PHONESYSTEM_VIRTUALUSER")),
    ("Domestic Calling Plan", 12.00, False, ("MCOPSTN1",)),
    ("International Calling Plan", 24.00, False, ("MCOPSTN2",)),
    ("Domestic Calling Plan (120 min)", 0.00, False, ("MCOPSTN5",)),
    (AUDIO_CONFERENCING, 4.00, False, ("MCOMEETADV",)),
    ("Audio Conferencing Select Dial Out", 0.00, False,
     ("MICROSOFT_TEAMS_AUDIO_CONFERENCING_SELECT_DIAL_OUT",)),
    ("Teams Rooms Standard", 15.00, False, ("MEETING_ROOM",)),
    ("Teams Rooms Pro", 40.00, False, ("MTR_PREM",)),

    # Storage and collaboration
    (ONEDRIVE_P2, 0.00, False, ("WACONEDRIVEENTERPRISE",)),
    (ONEDRIVE_P1, 5.00, False, ("WACONEDRIVESTANDARD",)),
    (SHAREPOINT_P2, 10.00, False, ("SHAREPOINTENTERPRISE",)),
    (SHAREPOINT_P1, 5.00, False, ("SHAREPOINTSTANDARD",)),

    # Productivity add-ons
    (VISIO_P2, 15.00, False, ("VISIOCLIENT", "VISIO ONLINE PLAN 2")),
    (VISIO_P1, 5.00, False, ("VISIOONLINE_PLAN1",)),
    (PROJECT_P5, 55.00, False, ("PROJECTPREMIUM",)),
    (PROJECT_P3, 30.00, False, ("PROJECTPROFESSIONAL",)),
    (PROJECT_P1, 10.00, False, ("PROJECTESSENTIALS", "PROJECT_P1")),
    (POWER_BI_PRO, 10.00, False, ("POWER_BI_PRO",)),
    (POWER_BI_PPU, 20.00, False, ("POWER_BI_PREMIUM_PER_USER", "PBI_PREMIUM_PER_USER")),
    (POWER_BI_FREE, 0.00, False, ("POWER_BI_STANDARD",)),
    ("Power Apps per user", 20.00, False, ("POWERAPPS_PER_USER",)),
    ("Power Apps per app", 5.00, False, ("POWERAPPS_PER_APP",)),
    ("Power Automate per user", 15.00, False, ("POWER_AUTOMATE_PER_USER",)),
    ("Dynamics 365 Customer Voice", 0.00, False, ("FORMS_PRO", "CUSTOMER_VOICE")),

    # AI assistants
    (M365_COPILOT, 30.00, False, ("MICROSOFT_365_COPILOT",)),
    (GITHUB_COPILOT, 20.00, False, ()),

    # Mail
    (EXCHANGE_P1, 4.00, False, ("EXCHANGESTANDARD", "EXCHANGE ONLINE (PLAN 1)")),
    (EXCHANGE_P2, 8.00, False, ("EXCHANGEENTERPRISE", "EXCHANGE ONLINE (PLAN 2)")),
    (EXCHANGE_KIOSK, 2.00, False, ("EXCHANGEDESKLESS",)),
    (EXCHANGE_ESSENTIALS, 2.00, False, ("EXCHANGE_S_ESSENTIALS",)),
    ("Exchange Online Protection", 0.00, False, ("EOP_ENTERPRISE",)),

    # Windows
    (WINDOWS_E3, 7.00, False, ("WIN10_PRO_ENT_SUB",)),
    (WINDOWS_E5, 11.00, False, ("WIN10_VDA_E5",)),
    ("Windows Store for Business", 0.00, False, ("WINDOWS_STORE",)),

    # Dynamics
    ("Dynamics 365 Sales Professional", 65.00, False, ("CRMSTANDARD",)),
    ("Dynamics 365 Sales Enterprise", 95.00, False, ("CRMENTERPRISE",)),
    ("Dynamics 365 Plan", 115.00, False, ("DYN365_ENTERPRISE_PLAN1",)),
    ("Dynamics 365 Team Members", 8.00, False, ("DYN365_TEAM_MEMBERS",)),

    # Free and trial grants
    (TEAMS_EXPLORATORY, 0.00, False, ("TEAMS_EXPLORATORY",)),
    (TEAMS_FREE, 0.00, False, ("TEAMS_FREE",)),
    (FLOW_FREE, 0.00, False, ("FLOW_FREE",)),
    (POWERAPPS_TRIAL, 0.00, False, ("POWERAPPS_VIRAL",)),
    ("Microsoft Stream", 0.00, False, ("STREAM", "STREAM_O365_E5")),
    (PVA_TRIAL, 0.00, False, ("CCIBOTS_PRIVPREV_VIRAL",)),
    (TEAMS_TRIAL, 0.00, False, ("MCO_TEAMS_IW",)),
    ("Power Automate RPA Attended", 0.00, False, ("POWER_AUTOMATE_ATTENDED_RPA",)),
    ("Microsoft Clipchamp", 0.00, False, ("CLIPCHAMP",)),
    ("Windows Autopatch", 0.00, False, ("WINDOWS_AUTOPATCH",)),
]


def _key(identifier: str) -> str:
    return ' '.join(identifier.split()).upper()


class LicenseCatalog:
    """
    Read-only mapping from license identifiers to LicenseInfo.

    Identifiers resolve through an ordered list of passes (exact, underscore/
    space folding, substring in either direction); anything left over falls
    back to a zero-cost entry named after the raw identifier.
    """

    def __init__(self, entries: Iterable[Tuple[str, float, bool, Iterable[str]]]):
        self._index: Dict[str, LicenseInfo] = {}
        self._entries: List[LicenseInfo] = []
        self._rows = [(name, cost, suite, tuple(aliases)) for name, cost, suite, aliases in entries]
        for display_name, cost, is_suite, aliases in self._rows:
            info = LicenseInfo(
                identifier=display_name,
                display_name=display_name,
                cost_per_month=float(cost),
                is_suite=bool(is_suite),
            )
            self._entries.append(info)
            # Display names are keys too, so normalized lists resolve exactly
            for alias in (display_name, *aliases):
                self._index[_key(alias)] = info
        self._passes = (
            ('exact', self._match_exact),
            ('underscore_fold', self._match_folded),
            ('substring', self._match_substring),
            ('substring_folded', self._match_substring_folded),
        )

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Matching passes
    # -------------------------------------------------------------------------

    def _match_exact(self, key: str) -> Optional[LicenseInfo]:
        return self._index.get(key)

    def _match_folded(self, key: str) -> Optional[LicenseInfo]:
        return self._index.get(key.replace('_', ' ')) or self._index.get(key.replace(' ', '_'))

    def _match_substring(self, key: str) -> Optional[LicenseInfo]:
        for candidate, info in self._index.items():
            if candidate in key or key in candidate:
                return info
        return None

    def _match_substring_folded(self, key: str) -> Optional[LicenseInfo]:
        for candidate, info in self._index.items():
            folded = candidate.replace('_', ' ')
            if folded in key or key in folded:
                return info
        return None

    def match_pass(self, identifier: str) -> str:
        """Name of the pass that resolves identifier, or 'fallback'"""
        key = _key(identifier or '')
        if not key:
            return 'fallback'
        for name, matcher in self._passes:
            if matcher(key):
                return name
        return 'fallback'

    def lookup(self, identifier: str) -> Optional[LicenseInfo]:
        """Resolve identifier without falling back"""
        key = _key(identifier or '')
        if not key:
            return None
        for _, matcher in self._passes:
            info = matcher(key)
            if info:
                return info
        return None

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    def resolve(self, identifier: str) -> LicenseInfo:
        """Resolve any license identifier; unknown licenses cost nothing"""
        info = self.lookup(identifier)
        if info:
            return info
        raw = (identifier or '').strip()
        logger.debug(f"Unknown license '{raw}' priced at 0")
        return LicenseInfo(identifier=raw, display_name=raw, cost_per_month=0.0, is_suite=False)

    def normalize(self, licenses: Iterable[str]) -> Tuple[str, ...]:
        """Canonical order: suites then add-ons, each sorted by display name"""
        suites = set()
        addons = set()
        for identifier in licenses:
            info = self.resolve(identifier)
            if not info.display_name:
                continue
            (suites if info.is_suite else addons).add(info.display_name)
        return tuple(sorted(suites)) + tuple(sorted(addons))

    def compute_cost(self, licenses: Iterable[str]) -> float:
        """Sum of monthly unit costs, unrounded"""
        total = 0.0
        for identifier in licenses:
            total += self.resolve(identifier).cost_per_month
        return total

    def with_entries(self, extra: Iterable[Tuple[str, float, bool, Iterable[str]]]) -> "LicenseCatalog":
        """New catalog with extra entries layered over these ones"""
        overrides = {display_name: (display_name, cost, is_suite, tuple(aliases))
                     for display_name, cost, is_suite, aliases in extra}

        merged = []
        for name, cost, suite, aliases in self._rows:
            if name in overrides:
                _, cost, suite, extra_aliases = overrides.pop(name)
                aliases = aliases + extra_aliases
            merged.append((name, cost, suite, aliases))
        merged.extend(overrides.values())
        return LicenseCatalog(merged)

    @classmethod
    def from_json_file(cls, file_path: str, base: Optional["LicenseCatalog"] = None) -> "LicenseCatalog":
        """
        Load catalog overrides from a JSON file.

        The file holds a list of objects with displayName, costPerMonth,
        isSuite and optional aliases. Entries replace same-named ones in base.
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as handle:
                data = json.load(handle)
        except FileNotFoundError:
            logger.error(f"Catalog file {file_path} not found")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Catalog file {file_path} is not valid JSON: {e}")
            raise

        if not isinstance(data, list):
            raise ValueError(f"Catalog file {file_path} must contain a list of entries")

        extra = []
        for item in data:
            try:
                extra.append((
                    str(item['displayName']).strip(),
                    float(item.get('costPerMonth', 0)),
                    bool(item.get('isSuite', False)),
                    tuple(item.get('aliases', ())),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"Invalid catalog entry {item!r}: {e}")

        logger.info(f"Loaded {len(extra)} catalog entries from {file_path}")
        return (base or DEFAULT_CATALOG).with_entries(extra)


DEFAULT_CATALOG = LicenseCatalog(LICENSE_TABLE)


def resolve(identifier: str) -> LicenseInfo:
    return DEFAULT_CATALOG.resolve(identifier)


def normalize(licenses: Iterable[str]) -> Tuple[str, ...]:
    return DEFAULT_CATALOG.normalize(licenses)


def compute_cost(licenses: Iterable[str]) -> float:
    return DEFAULT_CATALOG.compute_cost(licenses)
