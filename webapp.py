#!/usr/bin/env python3
"""
Flask JSON API for the License Optimizer
Exposes the analysis engine to the dashboard front end
"""

import os
import logging
import tempfile
import uuid
from dataclasses import replace
from pathlib import Path
from datetime import datetime
from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from core.analyzer import LicenseAnalyzer
from core.batch import BatchAnalyzer
from core.catalog import LicenseCatalog, DEFAULT_CATALOG
from core.models import Commitment, RuleSet, RuleSetError, Strategy, UserRecord
from core.strategies import custom_rule_base
from utils.config import Config
from utils.reporting import build_summary_prompt
from utils.roster import RosterError, RosterLoader

config = Config()

app = Flask(__name__)
app.secret_key = config.secret_key
app.config['MAX_CONTENT_LENGTH'] = config.max_upload_mb * 1024 * 1024

# Configuration
UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER',
                               os.path.join(tempfile.gettempdir(), 'license_optimizer_uploads'))
ALLOWED_EXTENSIONS = {'csv', 'xlsx', 'xls'}

os.makedirs(UPLOAD_FOLDER, exist_ok=True)


def load_catalog() -> LicenseCatalog:
    if config.license_catalog_file and os.path.exists(config.license_catalog_file):
        return LicenseCatalog.from_json_file(config.license_catalog_file)
    return DEFAULT_CATALOG


catalog = load_catalog()
batch = BatchAnalyzer(LicenseAnalyzer(catalog))
loader = RosterLoader(catalog)


class RequestError(ValueError):
    """Raised for malformed API payloads"""


def allowed_file(filename):
    """Check if file extension is allowed"""
    if '.' not in filename:
        return False
    return filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def setup_logging():
    """Setup logging for the web application"""
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_dir / f"webapp_{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_filename),
            logging.StreamHandler()
        ]
    )


def price_user(user: UserRecord, raw: dict) -> UserRecord:
    """Price a record from the catalog when the payload carries no cost"""
    if raw.get('cost') is not None:
        return user
    return replace(user, cost=catalog.compute_cost(catalog.normalize(user.licenses)))


def parse_payload():
    """Users, custom rules and raw body from a JSON request"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise RequestError('Request body must be a JSON object')

    raw_users = payload.get('users')
    if not isinstance(raw_users, list):
        raise RequestError('users must be a list')
    try:
        users = [price_user(UserRecord.from_dict(item), item) for item in raw_users]
    except (TypeError, ValueError, AttributeError) as e:
        raise RequestError(f'Invalid user record: {e}')

    rules = None
    if payload.get('rules') is not None:
        base = custom_rule_base(config.default_usage_threshold, config.security_departments)
        rules = RuleSet.from_dict(payload['rules'], base=base)

    return users, rules, payload


@app.errorhandler(RequestError)
@app.errorhandler(RuleSetError)
@app.errorhandler(RosterError)
def handle_bad_request(error):
    return jsonify({'error': str(error)}), 400


@app.errorhandler(Exception)
def handle_unexpected(error):
    if isinstance(error, HTTPException):
        return jsonify({'error': error.description}), error.code
    app.logger.error(f"Request failed: {error}", exc_info=True)
    return jsonify({'error': 'Internal server error'}), 500


@app.route('/api/analyze', methods=['POST'])
def analyze():
    """Recommendations for one strategy"""
    users, rules, payload = parse_payload()
    try:
        strategy = Strategy.parse(payload.get('strategy', Strategy.CURRENT.value))
    except ValueError as e:
        raise RequestError(str(e))

    results = batch.analyze_all(users, strategy, rules)
    stats = batch.compute_stats(users, strategy, rules)
    return jsonify({
        'strategy': strategy.value,
        'users': [item.to_dict() for item in results],
        'stats': stats.to_dict(),
    })


@app.route('/api/stats', methods=['POST'])
def stats():
    """Strategy comparison cards"""
    users, rules, _ = parse_payload()
    comparison = batch.compare_strategies(users, rules)
    return jsonify({
        'strategies': {strategy.value: item.to_dict() for strategy, item in comparison.items()}
    })


@app.route('/api/summary/prompt', methods=['POST'])
def summary_prompt():
    """Executive summary prompt for the text-generation collaborator"""
    users, rules, payload = parse_payload()
    try:
        commitment = Commitment(payload.get('commitment', Commitment.MONTHLY.value))
    except ValueError:
        raise RequestError(f"Unknown commitment: {payload.get('commitment')}")

    comparison = batch.compare_strategies(users, rules)
    return jsonify({'prompt': build_summary_prompt(users, comparison, commitment)})


def save_upload():
    """Persist the uploaded file and return its temporary path and original name"""
    if 'file' not in request.files:
        raise RequestError('No file selected')

    file = request.files['file']
    if file.filename == '':
        raise RequestError('No file selected')
    if not allowed_file(file.filename):
        raise RequestError(f"Invalid file type. Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    filename = secure_filename(file.filename)
    input_path = os.path.join(UPLOAD_FOLDER, f"{uuid.uuid4()}_{filename}")
    file.save(input_path)
    return input_path, filename


@app.route('/api/upload/users', methods=['POST'])
def upload_users():
    """Parse a roster export into user records"""
    input_path, filename = save_upload()
    try:
        rows, headers = loader.read_rows(input_path)
        users = loader.rows_to_users(rows, headers)
        app.logger.info(f"Parsed {len(users)} licensed users from {filename}")
        return jsonify({
            'users': [user.to_dict() for user in users],
            'source': 'upload',
            'fileName': filename,
            'totalParsed': len(rows),
            'licensedUsers': len(users),
        })
    finally:
        if os.path.exists(input_path):
            os.remove(input_path)


@app.route('/api/upload/mailbox', methods=['POST'])
def upload_mailbox():
    """Parse a mailbox usage export"""
    input_path, filename = save_upload()
    try:
        usage = loader.load_mailbox_usage(input_path)
        return jsonify({
            'mailboxData': {upn: {'usageGB': used, 'maxGB': quota}
                            for upn, (used, quota) in usage.items()},
            'source': 'upload',
            'fileName': filename,
            'totalMailboxes': len(usage),
        })
    finally:
        if os.path.exists(input_path):
            os.remove(input_path)


@app.route('/health')
def health_check():
    """Health check endpoint"""
    config_valid = config.validate()

    return jsonify({
        'status': 'healthy' if config_valid else 'configuration_error',
        'config_valid': config_valid,
        'invalid_settings': config.get_invalid_vars(),
        'catalog_entries': len(catalog),
        'strategies': [strategy.value for strategy in Strategy],
    })


if __name__ == '__main__':
    setup_logging()

    if not config.validate():
        app.logger.warning(f"Invalid configuration: {', '.join(config.get_invalid_vars())}")
    else:
        app.logger.info("Configuration validated successfully")

    app.logger.info(f"Starting License Optimizer API on port {config.port}")
    app.run(host='0.0.0.0', port=config.port, debug=config.debug)
