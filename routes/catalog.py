"""Read-only views of the loaded command catalog."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

import shared_state
from plugins.schema import CommandDescriptor
from utils.size_format import format_size

_logger = logging.getLogger("ferret.server")

catalog_router = APIRouter(tags=["catalog"])


class CommandInfo(BaseModel):
    name: str
    description: str
    source_location: str
    is_async: bool | None = None
    bindings: list[str] = []


class CatalogLog(BaseModel):
    hex: str
    bytes: int
    size: str
    capacity: int
    reallocations: int
    entries: int


def _command_info(name: str, descriptor: CommandDescriptor) -> CommandInfo:
    return CommandInfo(
        name=name,
        description=descriptor.description,
        source_location=descriptor.source_location,
        is_async=descriptor.is_async,
        bindings=list(descriptor.bindings),
    )


@catalog_router.get("/api/commands", response_model=list[CommandInfo])
async def list_commands():
    """Every command in the catalog, in load order."""
    return [
        _command_info(name, descriptor)
        for name, descriptor in shared_state.commands.items()
    ]


@catalog_router.get("/api/commands/{name}", response_model=CommandInfo)
async def get_command(name: str):
    descriptor = shared_state.commands.get(name)
    if descriptor is None:
        raise HTTPException(status_code=404, detail="Unknown command")
    return _command_info(name, descriptor)


@catalog_router.get("/api/catalog/log", response_model=CatalogLog)
async def catalog_log(decimal: bool = False):
    """The append-only catalog log as hex, with its size rendered for humans."""
    store = shared_state.commands
    _logger.debug("Catalog log requested (%d bytes)", store.bytes_written)
    return CatalogLog(
        hex=store.export_log_hex(),
        bytes=store.bytes_written,
        size=format_size(store.bytes_written, decimal=decimal),
        capacity=store.capacity,
        reallocations=store.reallocations,
        entries=len(store),
    )
