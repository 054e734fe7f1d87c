from pathlib import Path

import yaml
from pydantic import ValidationError

from rentpulse.components.aggregation import AggregationConfig
from rentpulse.components.metrics import MetricsConfig
from rentpulse.core.services.analytics_whitelist import create_whitelist
from rentpulse.rules.models import Rules


def load_rules(path: Path) -> Rules:
    """
    Load and validate the rules file.
    Raises FileNotFoundError if file missing.
    Raises ValueError if the YAML or the schema is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    with open(path) as f:
        content = f.read()

    # Rules may live inside a ```yaml block of a markdown document
    lines = content.splitlines()
    yaml_lines = []
    in_block = False
    found_block = False

    for line in lines:
        s_line = line.strip()
        if s_line.startswith("```yaml"):
            in_block = True
            found_block = True
            continue
        if in_block and s_line.startswith("```"):
            break

        if in_block:
            yaml_lines.append(line)

    clean_content = "\n".join(yaml_lines) if found_block else content

    try:
        data = yaml.safe_load(clean_content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    try:
        return Rules.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e


def aggregation_config_from_rules(rules: Rules) -> AggregationConfig:
    analytics = rules.analytics
    return AggregationConfig(
        enabled=rules.aggregation.enabled,
        whitelist=create_whitelist(
            allowed_amenities=analytics.allowed_amenities,
            structural_keys=analytics.structural_filter_keys,
            amenity_prefix=analytics.amenity_prefix,
        ),
        max_attempts=rules.aggregation.retry.max_attempts,
        backoff_seconds=tuple(rules.aggregation.retry.backoff_seconds),
    )


def metrics_config_from_rules(rules: Rules) -> MetricsConfig:
    return MetricsConfig(
        short_window_days=rules.rollups.short_window_days,
        long_window_days=rules.rollups.long_window_days,
        top_filters_limit=rules.rollups.top_filters_limit,
    )
