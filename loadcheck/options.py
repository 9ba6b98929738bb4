"""
Scenario options and scenario loading.

Options describe *how hard* to drive a scenario (stages) and *what must
hold* afterwards (thresholds).  They can live in the scenario module as
an ``options`` mapping, in a YAML file, or both; values from the YAML
file win, key by key, so CI can tighten a gate without editing the
scenario.

Example YAML::

    stages:
      - {duration: 10s, target: 50}
      - {duration: 50s, target: 100}
      - {duration: 10s, target: 0}
    thresholds:
      http_req_duration: ["p(99)<200"]
      checks: ["rate>0.99"]
"""

from __future__ import annotations

import importlib.util
import sys
from collections.abc import Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

import yaml

from loadcheck.exceptions import OptionsError
from loadcheck.models import Scenario, Stage, Threshold
from loadcheck.scheduler import parse_duration

_MODULE_PREFIX = "loadcheck_scenario_"


def _parse_stage(raw: Any, index: int) -> Stage:
    """Build a stage from ``{duration, target}`` or a ``[duration, target]`` pair."""
    if isinstance(raw, Mapping):
        try:
            duration, target = raw["duration"], raw["target"]
        except KeyError as exc:
            raise OptionsError(f"Stage {index} is missing {exc.args[0]!r}") from exc
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        duration, target = raw
    else:
        raise OptionsError(f"Stage {index} must be a mapping or a [duration, target] pair")

    if isinstance(target, bool) or not isinstance(target, int):
        raise OptionsError(f"Stage {index} target must be an integer, got {target!r}")
    return Stage(duration=parse_duration(duration), target=target)


def parse_stages(raw: Any) -> list[Stage]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise OptionsError("'stages' must be a non-empty list")
    return [_parse_stage(item, index) for index, item in enumerate(raw)]


def parse_thresholds(raw: Any) -> list[Threshold]:
    """
    Build thresholds from ``{metric: [expression, ...]}``.

    A single expression string is accepted in place of a list, and each
    expression may also be given as ``{"threshold": expression}``.
    """
    if raw is None:
        return []
    if not isinstance(raw, Mapping):
        raise OptionsError("'thresholds' must be a mapping of metric to expressions")

    thresholds: list[Threshold] = []
    for metric, expressions in raw.items():
        if isinstance(expressions, (str, Mapping)):
            expressions = [expressions]
        if not isinstance(expressions, (list, tuple)):
            raise OptionsError(f"Thresholds for {metric!r} must be a list")
        for expression in expressions:
            if isinstance(expression, Mapping):
                expression = expression.get("threshold")
            if not isinstance(expression, str):
                raise OptionsError(f"Threshold for {metric!r} must be a string")
            thresholds.append(Threshold(metric=str(metric), expression=expression))
    return thresholds


def load_options(path: Path) -> dict[str, Any]:
    """
    Read an options YAML file.

    Raises:
        OptionsError: If the file doesn't contain a mapping.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, Mapping):
        raise OptionsError(f"Options file {path} must contain a mapping")
    return dict(data)


def load_module(path: Path) -> ModuleType:
    """
    Import a scenario script from an arbitrary file path.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Scenario script not found: {path}")

    module_name = f"{_MODULE_PREFIX}{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise OptionsError(f"Cannot import scenario script {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def scenario_from_module(
    module: ModuleType, overrides: Mapping[str, Any] | None = None
) -> Scenario:
    """
    Build a :class:`Scenario` from a scenario module.

    The module provides ``options`` (mapping), ``default(data)`` or
    ``iteration(data)``, and optionally ``setup()`` and
    ``teardown(data)``.

    Args:
        module: The imported scenario module.
        overrides: Options taking precedence over ``module.options``.

    Raises:
        OptionsError: If the module has no iteration function or no
            stages, or its options are malformed.
    """
    iteration = getattr(module, "default", None) or getattr(module, "iteration", None)
    if not callable(iteration):
        raise OptionsError(f"{module.__name__} defines neither default() nor iteration()")

    options = {**dict(getattr(module, "options", {}) or {}), **dict(overrides or {})}
    if "stages" not in options:
        raise OptionsError(f"{module.__name__} declares no stages")

    default_name = module.__name__.rsplit(".", 1)[-1].removeprefix(_MODULE_PREFIX)
    return Scenario(
        iteration=iteration,
        stages=parse_stages(options["stages"]),
        thresholds=parse_thresholds(options.get("thresholds")),
        setup=getattr(module, "setup", None),
        teardown=getattr(module, "teardown", None),
        name=str(options.get("name", default_name)),
    )
