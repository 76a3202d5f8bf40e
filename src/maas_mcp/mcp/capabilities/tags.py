# src/maas_mcp/mcp/capabilities/tags.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MCP capabilities: tag management.

Tools:
    maas_list_tags, maas_create_tag, maas_update_tag_nodes, maas_delete_tag

``maas_create_tag`` requires ``name``; a call without it is rejected with
"missing required field 'name'" before MAAS is contacted.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, model_validator

from maas_mcp.domain.interfaces.backend import TagClient
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.capabilities.common import bind_tool
from maas_mcp.mcp.params import ToolParams
from maas_mcp.mcp.registry import ToolInfo

_TAG_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"


class ListTagsParams(ToolParams):
    """``maas_list_tags`` takes no parameters."""


class CreateTagParams(ToolParams):
    """Parameters for ``maas_create_tag``."""

    name: str = Field(
        ..., min_length=1, max_length=256, pattern=_TAG_NAME_PATTERN, description="Tag name."
    )
    comment: str | None = Field(default=None, description="Free-form description.")
    definition: str | None = Field(
        default=None, description="XPath expression; matching machines are tagged automatically."
    )
    kernel_opts: str | None = Field(
        default=None, description="Kernel options applied to machines carrying the tag."
    )


class TagRefParams(ToolParams):
    """Parameters naming a single tag."""

    tag_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("tag_name", "name"),
        description="Tag name.",
    )


class UpdateTagNodesParams(TagRefParams):
    """Parameters for ``maas_update_tag_nodes``."""

    add: list[str] = Field(default_factory=list, description="System ids to tag.")
    remove: list[str] = Field(default_factory=list, description="System ids to untag.")

    @model_validator(mode="after")
    def _require_change(self) -> UpdateTagNodesParams:
        if not self.add and not self.remove:
            raise ValueError("at least one of 'add' or 'remove' must be non-empty")
        return self


async def list_tags(params: ListTagsParams, backend: TagClient, cancel: CancelToken) -> Any:
    return await backend.list_tags(cancel=cancel)


async def create_tag(params: CreateTagParams, backend: TagClient, cancel: CancelToken) -> Any:
    return await backend.create_tag(
        params.name,
        comment=params.comment,
        definition=params.definition,
        kernel_opts=params.kernel_opts,
        cancel=cancel,
    )


async def update_tag_nodes(params: UpdateTagNodesParams, backend: TagClient, cancel: CancelToken) -> Any:
    return await backend.update_tag_nodes(
        params.tag_name, add=params.add, remove=params.remove, cancel=cancel
    )


async def delete_tag(params: TagRefParams, backend: TagClient, cancel: CancelToken) -> Any:
    await backend.delete_tag(params.tag_name, cancel=cancel)
    return {"deleted": True, "tag_name": params.tag_name}


def tag_tools(backend: TagClient) -> list[ToolInfo]:
    """Return the tag tools bound to ``backend``."""
    return [
        bind_tool("maas_list_tags", "List all tags.", ListTagsParams, list_tags, backend),
        bind_tool(
            "maas_create_tag",
            "Create a tag, optionally with an XPath definition and kernel options.",
            CreateTagParams,
            create_tag,
            backend,
        ),
        bind_tool(
            "maas_update_tag_nodes",
            "Add or remove a tag on machines.",
            UpdateTagNodesParams,
            update_tag_nodes,
            backend,
        ),
        bind_tool("maas_delete_tag", "Delete a tag.", TagRefParams, delete_tag, backend),
    ]
