"""
Production configuration validation
Checks the resolved Flask and fleet settings before the app serves traffic
"""
import os
import logging
from typing import Dict, List, Tuple, Any, Mapping

import pytz

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass


def validate_flask_config(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate Flask configuration for production.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    secret = config.get('SECRET_KEY')
    if not secret:
        issues.append("Missing SESSION_SECRET environment variable")
    elif len(secret) < 32:
        issues.append("SESSION_SECRET should be at least 32 characters for security")

    if not config.get('JWT_SECRET_KEY'):
        issues.append("Missing JWT signing key")

    if config.get('DEBUG'):
        issues.append("DEBUG mode is enabled - should be disabled in production")

    database_uri = config.get('SQLALCHEMY_DATABASE_URI') or ''
    if database_uri.startswith('sqlite'):
        issues.append("SQLite database configured - use PostgreSQL (DATABASE_URL) in production")

    return len(issues) == 0, issues


def validate_fleet_config(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate the workflow settings (thresholds, limits, currency, timezone).

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    threshold = config.get('APPROVAL_COST_THRESHOLD')
    if threshold is None or threshold < 0:
        issues.append("APPROVAL_COST_THRESHOLD must be zero or positive")

    for key in ('GPS_REPLAY_MAX_POINTS', 'GPS_EXPORT_LIMIT', 'GPS_INGEST_MAX_BATCH'):
        value = config.get(key)
        if not isinstance(value, int) or value < 1:
            issues.append(f"{key} must be a positive integer")
    if isinstance(config.get('GPS_REPLAY_MAX_POINTS'), int) and config['GPS_REPLAY_MAX_POINTS'] < 2:
        issues.append("GPS_REPLAY_MAX_POINTS must keep at least the first and last point")

    currency = config.get('DEFAULT_CURRENCY') or ''
    if len(currency) != 3 or not currency.isalpha():
        issues.append("DEFAULT_CURRENCY must be a 3-letter ISO code")

    tz_name = os.getenv('APP_TIMEZONE', 'Asia/Colombo')
    if tz_name not in pytz.all_timezones_set:
        issues.append(f"APP_TIMEZONE '{tz_name}' is not a known timezone")

    return len(issues) == 0, issues


def check_production_readiness(config: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Aggregate check of production readiness.

    Returns:
        dict: Status information including issues and recommendations
    """
    flask_valid, flask_issues = validate_flask_config(config)
    fleet_valid, fleet_issues = validate_fleet_config(config)

    all_issues = flask_issues + fleet_issues
    result = {
        'production_ready': flask_valid and fleet_valid,
        'flask_config_valid': flask_valid,
        'fleet_config_valid': fleet_valid,
        'issues': all_issues,
        'recommendations': []
    }

    if not flask_valid:
        result['recommendations'].append("Set a strong SESSION_SECRET, disable DEBUG and use PostgreSQL")
    if not fleet_valid:
        result['recommendations'].append("Fix the fleet workflow settings before deploying")

    if result['production_ready']:
        logger.info("CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"CONFIG: Production readiness check FAILED - Issues: {len(all_issues)}")
        for issue in all_issues:
            logger.warning(f"CONFIG: Issue - {issue}")

    return result


def require_valid_fleet_config(config: Mapping[str, Any]) -> None:
    """Refuse to start with settings the workflow cannot run with"""
    is_valid, issues = validate_fleet_config(config)
    if not is_valid:
        raise ConfigValidationError('; '.join(issues))
