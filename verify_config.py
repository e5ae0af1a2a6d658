#!/usr/bin/env python3
"""Simple script to verify config.example.yaml structure without loading the app."""

import yaml
from pathlib import Path

DURATION_KEYS = [
    'claim_lease',
    'schedule_interval',
    'retry_initial_delay',
    'retry_max_delay',
]


def verify_config_structure():
    """Verify config.example.yaml has the expected structure."""
    config_file = Path("config.example.yaml")

    if not config_file.exists():
        print("✗ config.example.yaml not found")
        return False

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except Exception as e:
        print(f"✗ Failed to parse config.example.yaml: {e}")
        return False

    if not isinstance(config, dict):
        print("✗ config.example.yaml must contain a mapping at the top level")
        return False

    errors = []

    known_keys = ['dispatch', 'email', 'logging']
    for key in config:
        if key not in known_keys:
            errors.append(f"Unknown top-level key: {key}")

    for key in known_keys:
        if key in config and not isinstance(config[key], dict):
            errors.append(f"'{key}' must be a dictionary")

    dispatch = config.get('dispatch') or {}
    if isinstance(dispatch, dict):
        for key in ('batch_size', 'send_delay_ms', 'retention_days', 'max_attempts'):
            if key in dispatch and not isinstance(dispatch[key], int):
                errors.append(f"'dispatch.{key}' must be an integer")

        if 'batch_size' in dispatch and isinstance(dispatch['batch_size'], int):
            if dispatch['batch_size'] < 1:
                errors.append("'dispatch.batch_size' must be at least 1")

        for key in DURATION_KEYS:
            if key in dispatch and not isinstance(dispatch[key], str):
                errors.append(f"'dispatch.{key}' must be a duration string like '10m'")

    email = config.get('email') or {}
    if isinstance(email, dict) and 'api_url' in email:
        if not str(email['api_url']).startswith(('http://', 'https://')):
            errors.append("'email.api_url' must be an http(s) URL")

    logging_cfg = config.get('logging') or {}
    if isinstance(logging_cfg, dict) and 'format' in logging_cfg:
        if logging_cfg['format'] not in ('json', 'key-value'):
            errors.append(f"'logging.format' has invalid value: {logging_cfg['format']}")

    if errors:
        print("✗ config.example.yaml validation failed:")
        for error in errors:
            print(f"  - {error}")
        return False
    else:
        print("✓ config.example.yaml structure is valid")
        print(f"  - Batch size: {dispatch.get('batch_size', 'default')}")
        print(f"  - Send delay: {dispatch.get('send_delay_ms', 'default')} ms")
        print(f"  - Retention: {dispatch.get('retention_days', 'default')} days")
        print(f"  - Schedule interval: {dispatch.get('schedule_interval', 'not set')}")
        print(f"  - Max attempts: {dispatch.get('max_attempts', 'default')}")
        return True


if __name__ == "__main__":
    import sys
    success = verify_config_structure()
    sys.exit(0 if success else 1)
