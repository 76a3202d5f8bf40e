# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Tool parameter validation helpers."""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from maas_mcp.domain.exceptions.mcp import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ToolParams(BaseModel):
    """Base for tool parameter models. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _describe(err: dict[str, Any]) -> str:
    field = ".".join(str(p) for p in err.get("loc", ())) or "params"
    if err.get("type") == "missing":
        return f"missing required field '{field}'"
    return f"invalid field '{field}': {err.get('msg', 'invalid value')}"


def validate_params(model: type[ModelT], raw: Any) -> ModelT:
    """Validate raw JSON params against ``model``.

    Args:
        model: Pydantic model describing the tool's parameters.
        raw: Decoded ``params`` value; ``None`` is treated as ``{}``.

    Returns:
        The validated model instance.

    Raises:
        ValidationError: With one human-readable message per problem, e.g.
            ``missing required field 'name'``.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(
            "params must be a JSON object", details={"received": type(raw).__name__}
        )
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        problems = [_describe(e) for e in exc.errors()]
        raise ValidationError("; ".join(problems), details={"errors": problems}) from exc
