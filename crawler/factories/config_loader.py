# crawler/factories/config_loader.py
"""
Source configuration loading and validation.
Loads sources from YAML and normalises them into source records.
"""
import re
from typing import List, Dict, Any, Optional
from urllib.parse import urlparse

import yaml
from loguru import logger

from crawler.interfaces.news_source_interface import DEFAULT_USER_AGENT, ValidationError
from utils.text_utils import domain_of

DOMAIN_RE = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9](?:\.[a-zA-Z0-9-]{1,63})*\.[a-zA-Z]{2,}$')

BOOL_FIELDS = ('is_active', 'respect_robots')
INT_FIELDS = ('delay_ms', 'timeout_ms')

# YAML keys accepted as aliases of record fields
ALIASES = {
    'rss_url': 'feed_url',
    'url': 'feed_url',
    'enabled': 'is_active',
    'category': 'default_category',
    'rate_limit_ms': 'delay_ms',
}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def validate_source_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate and normalise source fields.

    Args:
        data: Raw source fields (aliases allowed)
        partial: Only validate the fields present (updates)

    Returns:
        Normalised source record

    Raises:
        ValidationError: With every problem found joined into one message
    """
    record = {}
    for key, value in data.items():
        record[ALIASES.get(key, key)] = value

    errors = []
    if not partial or 'name' in record:
        name = (record.get('name') or '').strip()
        if not name:
            errors.append("Source name is required")
        record['name'] = name

    if not partial or 'feed_url' in record:
        feed_url = (record.get('feed_url') or '').strip()
        if not feed_url:
            errors.append("Feed URL is required")
        elif not _is_http_url(feed_url):
            errors.append(f"Invalid feed URL: {feed_url}")
        record['feed_url'] = feed_url

    if not partial and not record.get('domain') and record.get('feed_url'):
        record['domain'] = domain_of(record['feed_url'])
    if 'domain' in record:
        domain = (record.get('domain') or '').strip().lower()
        if domain.startswith('www.'):
            domain = domain[4:]
        if not DOMAIN_RE.match(domain):
            errors.append(f"Invalid domain format: {domain or '<empty>'}")
        record['domain'] = domain

    for key in BOOL_FIELDS:
        if key in record and not isinstance(record[key], bool):
            record[key] = str(record[key]).strip().lower() in ('1', 'true', 'yes', 'on')

    for key in INT_FIELDS:
        if key in record and record[key] is not None:
            try:
                record[key] = int(record[key])
            except (TypeError, ValueError):
                errors.append(f"{key} must be an integer")
    if isinstance(record.get('delay_ms'), int) and record['delay_ms'] < 0:
        errors.append("delay_ms must be non-negative")
    if isinstance(record.get('timeout_ms'), int) and record['timeout_ms'] <= 0:
        errors.append("timeout_ms must be positive")

    if 'user_agent' in record and not (record['user_agent'] or '').strip():
        record['user_agent'] = DEFAULT_USER_AGENT

    if errors:
        raise ValidationError(f"Source validation failed: {', '.join(errors)}",
                              source_name=record.get('name', ''))
    return record


class SourceConfigLoader:
    """Loads source records from a YAML file."""

    @classmethod
    def load_from_yaml(cls, config_path: str) -> List[Dict[str, Any]]:
        """
        Load source records from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            List of validated source records; invalid entries are logged and skipped
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file)
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {config_path}")
            return []
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}")
            return []

        if not isinstance(data, dict) or not isinstance(data.get('sources'), list):
            logger.warning(f"Invalid or empty configuration format in {config_path}")
            return []

        records = []
        for source_data in data['sources']:
            record = cls._convert_yaml_to_record(source_data)
            if record:
                records.append(record)

        logger.info(f"Loaded {len(records)} sources from {config_path}")
        return records

    @classmethod
    def _convert_yaml_to_record(cls, source_data: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(source_data, dict):
            logger.warning(f"⚠️ Skipping malformed source entry: {source_data!r}")
            return None
        try:
            return validate_source_data(source_data)
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping source {source_data.get('name', '?')}: {e}")
            return None
