"""
Analysis configuration.

An analysis can be described in a JSON file holding recoding rules and
named survey design descriptors:

    {
      "missing_codes": [-9, -7, -6, -5, -4, -2, -1],
      "recodes": [
        {"source_column": "BirthGender", "target_column": "gender",
         "mapping": {"1": "Male", "2": "Female"}, "reference_label": "Male"}
      ],
      "designs": {
        "jackknife": {"type": "replicate", "weight": "PERSON_FINWT0",
                      "replicate_prefix": "PERSON_FINWT", "replicates": 50,
                      "scale": 0.98},
        "taylor": {"type": "linearization", "weight": "PERSON_FINWT0",
                   "cluster": "VAR_CLUSTER", "stratum": "VAR_STRATUM",
                   "nested": true}
      }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union, Any

from .data_processing.models import RecodeRule, ReplicateWeights, Linearization, VarianceMethod
from .data_processing.survey_design import replicate_columns
from .exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Parsed analysis configuration."""
    recodes: List[RecodeRule] = field(default_factory=list)
    designs: Dict[str, VarianceMethod] = field(default_factory=dict)
    missing_codes: List[Union[int, float]] = field(default_factory=list)

    def design(self, name: str) -> VarianceMethod:
        if name not in self.designs:
            raise ConfigError(f"No design named '{name}' (available: {sorted(self.designs)})")
        return self.designs[name]


def load_analysis_config(config_path: Union[str, Path]) -> AnalysisConfig:
    """Read and parse a JSON analysis configuration file."""
    config_path = Path(config_path)
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read configuration {config_path}: {e}") from e

    config = parse_analysis_config(raw)
    logger.info(
        f"Configuration loaded from {config_path}: {len(config.recodes)} recodes, "
        f"{len(config.designs)} designs"
    )
    return config


def parse_analysis_config(raw: Dict[str, Any]) -> AnalysisConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a JSON object")

    recodes = [parse_recode_rule(item) for item in raw.get('recodes', [])]
    designs = {
        name: parse_variance_method(descriptor)
        for name, descriptor in raw.get('designs', {}).items()
    }
    missing_codes = raw.get('missing_codes', [])
    if not isinstance(missing_codes, list):
        raise ConfigError("'missing_codes' must be a list")

    return AnalysisConfig(recodes=recodes, designs=designs, missing_codes=missing_codes)


def parse_recode_rule(item: Dict[str, Any]) -> RecodeRule:
    try:
        mapping = item['mapping']
        if not isinstance(mapping, dict):
            raise ConfigError("'mapping' must be an object of code -> label")
        return RecodeRule(
            source_column=item['source_column'],
            target_column=item['target_column'],
            mapping={_parse_code(code): label for code, label in mapping.items()},
            reference_label=item['reference_label'],
            ordered=bool(item.get('ordered', False))
        )
    except KeyError as e:
        raise ConfigError(f"Recode rule missing key {e}") from e
    except TypeError as e:
        raise ConfigError(f"Malformed recode rule: {e}") from e


def parse_variance_method(descriptor: Dict[str, Any]) -> VarianceMethod:
    if not isinstance(descriptor, dict):
        raise ConfigError("Design descriptor must be a JSON object")
    kind = descriptor.get('type')
    try:
        if kind == 'replicate':
            if 'replicate_weights' in descriptor:
                replicates = list(descriptor['replicate_weights'])
            else:
                replicates = replicate_columns(
                    descriptor['replicate_prefix'],
                    int(descriptor['replicates']),
                    int(descriptor.get('start', 1))
                )
            rscales = descriptor.get('rscales')
            return ReplicateWeights(
                weight=descriptor['weight'],
                replicate_weights=tuple(replicates),
                type=descriptor.get('replicate_type', 'JKn'),
                scale=float(descriptor.get('scale', 1.0)),
                rscales=tuple(rscales) if rscales is not None else None,
                mse=bool(descriptor.get('mse', True))
            )
        if kind == 'linearization':
            return Linearization(
                cluster_id=descriptor['cluster'],
                stratum_id=descriptor.get('stratum'),
                weight=descriptor['weight'],
                nested=bool(descriptor.get('nested', False)),
                lonely_psu=descriptor.get('lonely_psu', 'fail')
            )
    except KeyError as e:
        raise ConfigError(f"Design descriptor missing key {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Malformed design descriptor: {e}") from e

    raise ConfigError(f"Unknown design type '{kind}' (expected 'replicate' or 'linearization')")


def _parse_code(code: Any) -> Any:
    """JSON object keys are strings; restore integer codes."""
    if isinstance(code, str):
        try:
            return int(code)
        except ValueError:
            try:
                return float(code)
            except ValueError:
                return code
    return code
