"""Helper parameter parsing and validation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from inkstream.config import BOOL_FALSE, BOOL_TRUE

from .contracts import HelperParamSpec, HelperSpec, Ref

if TYPE_CHECKING:
    from .context import Context


def parse_param_pairs(pairs: Sequence[str] | None, *, option: str = "--set") -> dict[str, str]:
    """Parse repeatable key=value CLI pairs into a dict."""
    parsed: dict[str, str] = {}
    for raw_pair in pairs or ():
        if "=" not in raw_pair:
            msg = f"invalid {option} '{raw_pair}'. Expected key=value."
            raise ValueError(msg)
        raw_key, raw_value = raw_pair.split("=", 1)
        key = raw_key.strip()
        value = raw_value.strip()
        if not key:
            msg = f"invalid {option} '{raw_pair}'. Key cannot be empty."
            raise ValueError(msg)
        parsed[key] = value
    return parsed


def _spec_by_key(spec: HelperSpec) -> dict[str, HelperParamSpec]:
    indexed: dict[str, HelperParamSpec] = {}
    for param in spec.params:
        for key in param.all_keys():
            if key in indexed:
                msg = f"duplicate parameter key mapping '{key}' in helper '{spec.helper_id}'."
                raise ValueError(msg)
            indexed[key] = param
    return indexed


def _coerce_value(param: HelperParamSpec, raw_value: Any, *, helper_id: str) -> Any:
    key = param.key

    if param.value_type is bool:
        if isinstance(raw_value, bool):
            coerced = raw_value
        else:
            normalized = str(raw_value).strip().lower()
            if normalized in BOOL_TRUE:
                coerced = True
            elif normalized in BOOL_FALSE:
                coerced = False
            else:
                msg = (
                    f"invalid value '{raw_value}' for '{key}' in helper '{helper_id}'. "
                    "Expected a boolean (true/false)."
                )
                raise ValueError(msg)
    elif param.value_type in (int, float):
        try:
            coerced = param.value_type(raw_value)
        except (TypeError, ValueError) as exc:
            expected = "an integer" if param.value_type is int else "a float"
            msg = f"invalid value '{raw_value}' for '{key}' in helper '{helper_id}'. Expected {expected}."
            raise ValueError(msg) from exc
    elif param.value_type is str:
        coerced = str(raw_value)
    elif isinstance(raw_value, param.value_type):
        coerced = raw_value
    else:
        msg = f"unsupported param type '{param.value_type}' for '{key}' in '{helper_id}'."
        raise ValueError(msg)

    if param.choices and coerced not in param.choices:
        choices = ", ".join(str(choice) for choice in param.choices)
        msg = (
            f"invalid value '{coerced}' for '{key}' in helper '{helper_id}'. "
            f"Valid values: {choices}."
        )
        raise ValueError(msg)

    if isinstance(coerced, (int, float)) and not isinstance(coerced, bool):
        if param.min_value is not None and coerced < param.min_value:
            msg = (
                f"invalid value '{coerced}' for '{key}' in helper '{helper_id}'. "
                f"Minimum allowed value is {param.min_value}."
            )
            raise ValueError(msg)
        if param.max_value is not None and coerced > param.max_value:
            msg = (
                f"invalid value '{coerced}' for '{key}' in helper '{helper_id}'. "
                f"Maximum allowed value is {param.max_value}."
            )
            raise ValueError(msg)

    return coerced


def resolve_refs(raw_params: Mapping[str, Any] | None, context: Context) -> dict[str, Any]:
    """Replace ``Ref`` values with their context values."""
    return {
        key: value.resolve(context) if isinstance(value, Ref) else value
        for key, value in (raw_params or {}).items()
    }


def resolve_helper_params(
    *,
    spec: HelperSpec,
    raw_params: Mapping[str, Any] | None = None,
    context: Context | None = None,
) -> dict[str, Any]:
    """Resolve context refs and defaults, then validate declared params."""
    if context is not None:
        raw_params = resolve_refs(raw_params, context)
    if not spec.params and not spec.strict_params:
        return dict(raw_params or {})

    indexed = _spec_by_key(spec)
    resolved: dict[str, Any] = {}
    required: set[str] = set()
    for param in spec.params:
        if param.has_default:
            resolved[param.key] = param.default
        if param.required:
            required.add(param.key)

    for key, raw_value in (raw_params or {}).items():
        if raw_value is None:
            continue
        if key not in indexed:
            if not spec.strict_params:
                resolved[key] = raw_value
                continue
            valid = ", ".join(param.key for param in spec.params)
            msg = (
                f"unknown parameter '{key}' for helper '{spec.helper_id}'. "
                f"Supported parameters: {valid}."
            )
            raise ValueError(msg)
        param = indexed[key]
        resolved[param.key] = _coerce_value(param, raw_value, helper_id=spec.helper_id)

    missing = sorted(key for key in required if key not in resolved)
    if missing:
        msg = f"missing required parameter(s) for helper '{spec.helper_id}': {', '.join(missing)}."
        raise ValueError(msg)

    return resolved
