"""Helpers shared by CLI commands."""

import importlib
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

import click
import yaml

from stepflow.client import Stepflow
from stepflow.function import StepFunction


def load_target(target: str) -> Any:
    """Import ``module:attr`` (or ``module:attr.sub``) from the working directory."""
    if ':' not in target:
        raise click.BadParameter("expected MODULE:ATTR", param_hint='TARGET')

    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    module_name, attr_path = target.split(':', 1)
    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"could not import {module_name}: {e}", param_hint='TARGET')

    for attr in attr_path.split('.'):
        try:
            obj = getattr(obj, attr)
        except AttributeError:
            raise click.BadParameter(f"{module_name} has no attribute {attr_path}", param_hint='TARGET')
    return obj


def resolve_function(target: Any, fn_id: str = None) -> Tuple[Stepflow, StepFunction]:
    """Accept a StepFunction directly, or a client plus an optional function id."""
    if isinstance(target, StepFunction):
        return target.client, target

    if isinstance(target, Stepflow):
        if fn_id:
            if fn_id not in target.functions:
                raise click.BadParameter(f"no function {fn_id!r} on client {target.app_id!r}", param_hint='--fn')
            return target, target.functions[fn_id]
        if len(target.functions) == 1:
            return target, next(iter(target.functions.values()))
        raise click.BadParameter("client has several functions; choose one with --fn", param_hint='--fn')

    raise click.BadParameter("TARGET must be a Stepflow client or a step function", param_hint='TARGET')


def load_payload(path: Path) -> Dict[str, Any]:
    """Read an invocation payload from a JSON or YAML file."""
    with open(path, 'r') as f:
        text = f.read()

    if path.suffix.lower() == '.json':
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise click.BadParameter("payload must be a mapping", param_hint='--payload')
    return data
