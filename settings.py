"""
Configuration loading.

Built-in defaults are overridden by the bundled support_files JSON and then
by a user supplied JSON file. Command line flags are applied last by
cert_tool.
"""

import copy
import json
import os

from errors import PrerequisiteError

support_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "support_files")
default_config_file = os.path.join(support_dir, "cert_tool_config.json")

DEFAULTS = {
    "key_size": 2048,
    "ca_validity_days": 3650,
    "entity_validity_days": 365,
    "certificates_dir": "certificates",
    "password_bytes": 32,
    "extra_dns_names": ["localhost"],
    "subject": {
        "country": "US",
        "state": "Default State",
        "locality": "Default City",
        "organization": "Default Company Ltd",
        "organizational_unit": "Default Organizational Unit",
        "email": "default@example.com",
    },
}

_INT_KEYS = ("key_size", "ca_validity_days", "entity_validity_days", "password_bytes")


def _merge(conf, overrides, source):
    for key, value in overrides.items():
        if key not in DEFAULTS:
            raise PrerequisiteError(f"Unknown configuration key '{key}' in {source}")
        if key == "subject":
            if not isinstance(value, dict):
                raise PrerequisiteError(f"'subject' must be an object in {source}")
            for field, text in value.items():
                if field not in DEFAULTS["subject"]:
                    raise PrerequisiteError(f"Unknown subject field '{field}' in {source}")
                if not isinstance(text, str):
                    raise PrerequisiteError(
                        f"Subject field '{field}' must be a string in {source}, got {text!r}")
                conf["subject"][field] = text
        else:
            conf[key] = value


def _read(path):
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise PrerequisiteError(f"Cannot read configuration file {path}", detail=str(e))
    if not isinstance(data, dict):
        raise PrerequisiteError(f"Configuration file {path} must contain a JSON object")
    return data


def validate(conf):
    for key in _INT_KEYS:
        value = conf[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise PrerequisiteError(f"Configuration '{key}' must be a positive integer, got {value!r}")
    if conf["key_size"] < 2048:
        raise PrerequisiteError("Configuration 'key_size' must be at least 2048")
    if not isinstance(conf["certificates_dir"], str) or not conf["certificates_dir"]:
        raise PrerequisiteError("Configuration 'certificates_dir' must be a non-empty string")
    names = conf["extra_dns_names"]
    if not isinstance(names, list) or not all(isinstance(n, str) and n for n in names):
        raise PrerequisiteError("Configuration 'extra_dns_names' must be a list of names")
    return conf


def load_config(path=None):
    """
    Build the effective configuration.

    Args:
        path: Optional user JSON file; must exist when given

    Returns:
        dict with every key of DEFAULTS
    """
    conf = copy.deepcopy(DEFAULTS)
    if os.path.exists(default_config_file):
        _merge(conf, _read(default_config_file), default_config_file)
    if path:
        if not os.path.exists(path):
            raise PrerequisiteError(f"Configuration file not found: {path}")
        _merge(conf, _read(path), path)
    return validate(conf)
