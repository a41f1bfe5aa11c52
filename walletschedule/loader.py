"""Reading rule definitions and global config from YAML.

Two layouts are accepted: a single ``rules.yaml`` holding ``rules``,
``config`` and ``wallets`` keys, or a ``rules/`` directory with one
``<rule-id>.yaml`` per rule plus an optional ``_config.yaml``.
"""

import logging
import os
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import yaml

from . import constants
from .schema import GlobalConfig, RecurrenceRule, RuleFile

logger = logging.getLogger(__name__)


def find_rules_location() -> Optional[Path]:
    """
    Discover where rules live when no path was given.

    Checked in order: ``WALLETSCHEDULE_DIR``, ``WALLETSCHEDULE_FILE``, then
    ``rules/`` and ``rules.yaml`` under the working directory. An env var
    naming a missing path is logged and skipped.
    """
    for env_var, exists in (
        (constants.ENV_RULES_DIR, Path.is_dir),
        (constants.ENV_RULES_FILE, Path.is_file),
    ):
        value = os.getenv(env_var)
        if not value:
            continue
        if exists(Path(value)):
            return Path(value)
        logger.warning("Ignoring %s=%s: path does not exist", env_var, value)

    cwd = Path.cwd()
    for candidate in (cwd / constants.DEFAULT_RULES_DIR, cwd / constants.DEFAULT_RULES_FILE):
        if candidate.exists():
            return candidate
    return None


def _read_yaml(path: Path) -> Any:
    with path.open() as f:
        return yaml.safe_load(f)


def load_rule_from_file(filepath: Path) -> Optional[RecurrenceRule]:
    """
    Parse one ``<rule-id>.yaml`` from a rules directory.

    Returns None (after logging) for empty, unparsable or invalid files and
    for files whose name does not match the rule id, so that one bad file
    does not stop the rest of the directory from loading.
    """
    try:
        data = _read_yaml(filepath)
    except yaml.YAMLError as e:
        logger.error("Cannot parse %s: %s", filepath, e)
        return None
    if data is None:
        logger.warning("Skipping empty rule file %s", filepath)
        return None

    try:
        rule = RecurrenceRule(**data)
    except (ValueError, TypeError) as e:
        logger.error("Invalid rule in %s: %s", filepath, e)
        return None

    if filepath.stem != rule.id:
        logger.error("Skipping %s: file must be named %s.yaml", filepath, rule.id)
        return None

    rule.source_file = filepath
    return rule


def _load_directory_config(dirpath: Path) -> tuple[GlobalConfig, dict]:
    config_path = dirpath / constants.CONFIG_FILENAME
    if not config_path.is_file():
        return GlobalConfig(), {}
    try:
        data = _read_yaml(config_path) or {}
        wallets = data.pop("wallets", None) or {}
        return GlobalConfig(**data), wallets
    except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
        logger.warning("Using default config; %s is invalid: %s", config_path, e)
        return GlobalConfig(), {}


def load_rules_from_directory(dirpath: Path) -> RuleFile:
    """Load every rule file in ``dirpath``; a repeated id keeps the first file in sorted order."""
    config, wallets = _load_directory_config(dirpath)

    rules: dict[str, RecurrenceRule] = {}
    for rule_path in sorted(dirpath.glob(constants.RULE_FILE_PATTERN)):
        if rule_path.name == constants.CONFIG_FILENAME or rule_path.name.startswith("."):
            continue
        rule = load_rule_from_file(rule_path)
        if rule is None:
            continue
        if rule.id in rules:
            logger.error("Duplicate rule id %s in %s ignored", rule.id, rule_path)
            continue
        rules[rule.id] = rule

    rule_file = RuleFile(rules=list(rules.values()), config=config, wallets=wallets)
    logger.info(
        "Loaded %d rules (%d enabled) from %s",
        len(rule_file.rules),
        len(rule_file.enabled_rules),
        dirpath,
    )
    return rule_file


def load_rules_file(filepath: Path) -> RuleFile:
    """
    Load a single rules.yaml.

    Raises:
        yaml.YAMLError: the file is not valid YAML
        ValueError: schema violations (pydantic.ValidationError) or repeated rule ids
    """
    try:
        data = _read_yaml(filepath)
    except yaml.YAMLError as e:
        logger.error("Cannot parse %s: %s", filepath, e)
        raise

    if data is None:
        logger.warning("Rules file %s is empty", filepath)
        return RuleFile()
    # a "rules:" key whose entries are all commented out parses as None
    data["rules"] = data.get("rules") or []

    rule_file = RuleFile(**data)
    counts = Counter(r.id for r in rule_file.rules)
    repeated = sorted(rule_id for rule_id, n in counts.items() if n > 1)
    if repeated:
        raise ValueError(f"Duplicate rule IDs: {', '.join(repeated)}")

    for rule in rule_file.rules:
        rule.source_file = filepath
    logger.info(
        "Loaded %d rules (%d enabled) from %s",
        len(rule_file.rules),
        len(rule_file.enabled_rules),
        filepath,
    )
    return rule_file


def load_rules_from_path(path: Optional[Path] = None) -> Optional[RuleFile]:
    """Load from a file or directory, discovering the location when ``path`` is None."""
    if path is None:
        path = find_rules_location()
        if path is None:
            logger.debug("No rules location found")
            return None
    if path.is_dir():
        return load_rules_from_directory(path)
    if path.is_file():
        return load_rules_file(path)
    return None


def resolve_config(config: Optional[GlobalConfig] = None) -> GlobalConfig:
    """Apply environment overrides (database URL) on top of file config."""
    config = config or GlobalConfig()
    if database_url := os.getenv(constants.ENV_DATABASE_URL):
        config = config.model_copy(update={"database_url": database_url})
    return config
