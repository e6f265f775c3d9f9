# =============================================================================
# utils/reporting.py - Result export and executive summary prompt
# =============================================================================

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from core.models import AnalyzedUser, Commitment, Strategy, StrategyStats, UserRecord
from utils.csv_utils import CSVHandler

logger = logging.getLogger(__name__)

RESULT_FIELDNAMES = [
    'id', 'display_name', 'upn', 'department', 'status', 'usage_gb', 'max_gb',
    'original_licenses', 'recommended_licenses', 'original_cost', 'recommended_cost',
    'delta', 'changed', 'reasons',
]

STRATEGY_LABELS = {
    Strategy.CURRENT: "Current State",
    Strategy.SECURITY: "Maximize Security",
    Strategy.COST: "Minimize Cost",
    Strategy.BALANCED: "Balanced Approach",
    Strategy.CUSTOM: "Custom Strategy",
}


def result_to_row(item: AnalyzedUser) -> Dict[str, Any]:
    """Flatten one analyzed user for tabular output"""
    user = item.user
    return {
        'id': user.id,
        'display_name': user.display_name,
        'upn': user.upn,
        'department': user.department,
        'status': user.status.value,
        'usage_gb': user.usage_gb,
        'max_gb': user.max_gb,
        'original_licenses': '; '.join(item.original_licenses),
        'recommended_licenses': '; '.join(item.licenses),
        'original_cost': round(item.original_cost, 2),
        'recommended_cost': round(item.cost, 2),
        'delta': round(item.delta, 2),
        'changed': item.changed,
        'reasons': ' | '.join(item.result.messages),
    }


def stats_to_row(stats: StrategyStats) -> Dict[str, Any]:
    return {
        'strategy': STRATEGY_LABELS[stats.strategy],
        'monthly_cost': round(stats.new_cost, 2),
        'annual_cost': round(stats.annual_cost, 2),
        'monthly_delta': round(stats.delta, 2),
        'annual_delta': round(stats.annual_delta, 2),
        'affected_users': stats.affected_count,
        'upgrades': stats.upgrade_count,
        'downgrades': stats.downgrade_count,
    }


def write_results_csv(results: Sequence[AnalyzedUser], output_path: str) -> None:
    CSVHandler.write_csv([result_to_row(item) for item in results], output_path, RESULT_FIELDNAMES)


def write_results_excel(results: Sequence[AnalyzedUser], output_path: str,
                        comparison: Optional[Dict[Strategy, StrategyStats]] = None) -> None:
    """Export recommendations and the strategy comparison to Excel with multiple sheets"""
    try:
        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            recommendations = pd.DataFrame([result_to_row(item) for item in results],
                                           columns=RESULT_FIELDNAMES)
            recommendations.to_excel(writer, sheet_name='Recommendations', index=False)

            changed = recommendations[recommendations['changed'] == True]
            changed.to_excel(writer, sheet_name='Changes', index=False)

            if comparison:
                summary = pd.DataFrame([stats_to_row(stats) for stats in comparison.values()])
                summary.to_excel(writer, sheet_name='Strategy_Comparison', index=False)

        logger.info(f"Exported {len(results)} results to {output_path}")

    except Exception as e:
        logger.error(f"Error writing Excel export: {e}")
        raise


def write_results(results: Sequence[AnalyzedUser], output_path: str,
                  comparison: Optional[Dict[Strategy, StrategyStats]] = None) -> None:
    """Write CSV or Excel depending on the output extension"""
    if output_path.lower().endswith(('.xlsx', '.xls')):
        write_results_excel(results, output_path, comparison)
    else:
        write_results_csv(results, output_path)


def _signed(amount: float) -> str:
    if amount > 0:
        return f"+${amount:.2f}"
    if amount < 0:
        return f"-${abs(amount):.2f}"
    return "$0.00"


def build_summary_prompt(users: Sequence[UserRecord], comparison: Dict[Strategy, StrategyStats],
                         commitment: Commitment = Commitment.MONTHLY) -> str:
    """
    Build the text-generation prompt for the executive summary.

    The prompt carries the current spend, each strategy's cost and delta,
    the billing basis and the user directory. Output is deterministic for
    the same inputs.
    """
    current = comparison.get(Strategy.CURRENT)
    current_cost = current.new_cost if current else sum(u.cost for u in users)

    options: List[str] = []
    option_labels = []
    number = 1
    for strategy in (Strategy.SECURITY, Strategy.COST, Strategy.BALANCED, Strategy.CUSTOM):
        stats = comparison.get(strategy)
        if stats is None:
            continue
        label = STRATEGY_LABELS[strategy]
        option_labels.append(label)
        options.append(
            f"OPTION {number} - {label.upper()}: ${stats.new_cost:.2f} "
            f"({_signed(stats.new_cost - current_cost)}/mo delta, "
            f"{stats.affected_count} users affected)"
        )
        number += 1

    directory = [
        f"- {u.display_name} ({u.department or 'Unassigned'}): Current licenses: "
        f"{', '.join(u.licenses)}; Mailbox: {u.usage_gb:g}GB/{u.max_gb:g}GB; "
        f"Current cost: ${u.cost:.2f}/mo"
        for u in users
    ]

    lines = [
        "You are a senior virtual CIO preparing an executive summary for a C-Suite audience "
        "about Microsoft 365 licensing optimization. Be authoritative and data-driven.",
        "",
        "Here is the data:",
        "",
        f"BILLING BASIS: {commitment.label}",
        f"CURRENT MONTHLY SPEND: ${current_cost:.2f}",
        *options,
        "",
        f"USER DIRECTORY ({len(users)} users):",
        *directory,
        "",
        "Write a polished executive summary in Markdown that includes:",
        "1. Executive Overview - the current licensing posture and why action is needed.",
        f"2. Cost Comparison Table - Current State, {', '.join(option_labels)} with monthly cost, "
        "annual projected cost, delta vs current and a one-line rationale.",
        "3. Risk Assessment - security gaps, compliance exposure, productivity and budget "
        "impact for each option, citing user counts and license tiers.",
        "4. Recommendation - a decisive recommendation with rationale.",
        "5. Implementation Roadmap - a phased 30/60/90 day plan.",
        "6. Next Steps - 3-4 concrete action items for leadership.",
    ]
    return '\n'.join(lines)
