# =============================================================================
# main.py - CLI entry point
# =============================================================================

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.analyzer import LicenseAnalyzer
from core.batch import BatchAnalyzer
from core.catalog import LicenseCatalog, DEFAULT_CATALOG
from core.models import Commitment, RuleSet, RuleSetError, Strategy
from core.strategies import custom_rule_base
from utils.config import Config
from utils.reporting import STRATEGY_LABELS, build_summary_prompt, write_results
from utils.roster import RosterLoader


def setup_logging(level: str = "INFO", log_dir: str = "logs") -> str:
    """Setup logging configuration with both console and file output"""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_path / f"license_optimizer_{timestamp}.log"

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File always gets DEBUG, including every fired rule
    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Console: {level.upper()}, File: DEBUG")
    logger.info(f"Log file: {log_filename}")

    return str(log_filename)


def load_catalog(config: Config) -> LicenseCatalog:
    if config.license_catalog_file:
        return LicenseCatalog.from_json_file(config.license_catalog_file)
    return DEFAULT_CATALOG


def load_custom_rules(rules_file: Optional[str], config: Config) -> Optional[RuleSet]:
    """Custom rule set from a JSON file, on top of the configured defaults"""
    if not rules_file:
        return None
    base = custom_rule_base(config.default_usage_threshold, config.security_departments)
    with open(rules_file, 'r', encoding='utf-8') as handle:
        return RuleSet.from_dict(json.load(handle), base=base)


def load_users(args, loader: RosterLoader):
    users = loader.load(args.roster, getattr(args, 'sheet_name', None))
    if getattr(args, 'mailbox', None):
        users = loader.merge_mailbox_usage(users, loader.load_mailbox_usage(args.mailbox))
    return users


def handle_analyze(args, config, batch: BatchAnalyzer, loader: RosterLoader):
    """Write recommendations for one strategy"""
    logger = logging.getLogger(__name__)

    users = load_users(args, loader)
    strategy = Strategy.parse(args.strategy)
    custom_rules = load_custom_rules(args.rules, config)
    if custom_rules is not None and strategy is not Strategy.CUSTOM:
        logger.warning(f"--rules ignored for {strategy.value} strategy")

    results = batch.analyze_all(users, strategy, custom_rules)
    comparison = batch.compare_strategies(users, custom_rules)
    write_results(results, args.output, comparison)

    stats = batch.compute_stats(users, strategy, custom_rules)
    logger.info(f"{STRATEGY_LABELS[strategy]}: ${stats.base_cost:.2f} -> ${stats.new_cost:.2f} "
                f"({stats.delta:+.2f}/mo), {stats.affected_count} users affected")


def handle_compare(args, config, batch: BatchAnalyzer, loader: RosterLoader):
    """Log the strategy comparison cards"""
    logger = logging.getLogger(__name__)

    users = load_users(args, loader)
    custom_rules = load_custom_rules(args.rules, config)
    comparison = batch.compare_strategies(users, custom_rules)

    for strategy, stats in comparison.items():
        logger.info(
            f"{STRATEGY_LABELS[strategy]:<20} ${stats.new_cost:>10.2f}/mo "
            f"({stats.delta:+.2f}) affected={stats.affected_count} "
            f"upgrades={stats.upgrade_count} downgrades={stats.downgrade_count}"
        )

    if args.output:
        Path(args.output).write_text(
            json.dumps({s.value: stats.to_dict() for s, stats in comparison.items()}, indent=2),
            encoding='utf-8'
        )
        logger.info(f"Comparison written to {args.output}")


def handle_prompt(args, config, batch: BatchAnalyzer, loader: RosterLoader):
    """Write the executive summary prompt"""
    logger = logging.getLogger(__name__)

    users = load_users(args, loader)
    custom_rules = load_custom_rules(args.rules, config)
    comparison = batch.compare_strategies(users, custom_rules)
    prompt = build_summary_prompt(users, comparison, Commitment(args.commitment))

    Path(args.output).write_text(prompt, encoding='utf-8')
    logger.info(f"Executive summary prompt written to {args.output}")


def main():
    """Main CLI entry point"""
    config = Config()

    parser = argparse.ArgumentParser(description="Microsoft 365 License Optimizer")
    subparsers = parser.add_subparsers(dest='command', help='Command')

    def add_roster_arguments(sub):
        sub.add_argument('roster', help='Roster CSV or Excel file')
        sub.add_argument('--mailbox', help='Mailbox usage CSV or Excel file')
        sub.add_argument('--sheet-name', help='Excel sheet name (optional)')
        sub.add_argument('--rules', help='Custom rule set JSON file')

    analyze_parser = subparsers.add_parser('analyze', help='Recommend license changes')
    add_roster_arguments(analyze_parser)
    analyze_parser.add_argument('output', help='Output CSV or Excel file path')
    analyze_parser.add_argument('--strategy', default='balanced',
                                choices=[s.value for s in Strategy], help='Optimization strategy')

    compare_parser = subparsers.add_parser('compare', help='Compare all strategies')
    add_roster_arguments(compare_parser)
    compare_parser.add_argument('--output', help='Write comparison JSON to this path')

    prompt_parser = subparsers.add_parser('prompt', help='Build the executive summary prompt')
    add_roster_arguments(prompt_parser)
    prompt_parser.add_argument('output', help='Output text file path')
    prompt_parser.add_argument('--commitment', default='monthly',
                               choices=[c.value for c in Commitment], help='Billing basis')

    parser.add_argument('--log-level', default=config.log_level,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level, config.log_dir)
    logger = logging.getLogger(__name__)

    if not config.validate():
        logger.error(f"Invalid configuration variables: {config.get_invalid_vars()}")
        sys.exit(1)

    if not Path(args.roster).exists():
        logger.error(f"Input file not found: {args.roster}")
        sys.exit(1)

    handlers = {
        'analyze': handle_analyze,
        'compare': handle_compare,
        'prompt': handle_prompt,
    }

    try:
        catalog = load_catalog(config)
        batch = BatchAnalyzer(LicenseAnalyzer(catalog))
        loader = RosterLoader(catalog)
        handlers[args.command](args, config, batch, loader)

    except RuleSetError as e:
        logger.error(f"Invalid rule configuration: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
