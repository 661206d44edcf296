#!/usr/bin/env python3
"""
CLI tool for kubeconverge.

Applies YAML/JSON resource documents to a cluster through the resource
controller and keeps the observed state in PostgreSQL.

A document looks like::

    kind: priority_class
    address: high
    config:
      metadata:
        name: high
      value: 1000000
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import click
import yaml
from tabulate import tabulate

from config import Config, get_config
from controller import ResourceController, ResourceData, ResourceState
from errors import ReconcileError, ValidationError
from flatmodel import FlatModel
from kinds.base import ResourceKind
from kinds.registry import KindRegistry, register_builtin_kinds
from kube import KubernetesObjectStore
from state import StateManager
from store import ObjectStore
from validation import validate_config_document

logger = logging.getLogger(__name__)


def load_documents(filename: str) -> List[Dict[str, Any]]:
    """Read every resource document from a YAML or JSON file."""
    with open(filename, "r") as f:
        if filename.endswith(".yaml") or filename.endswith(".yml"):
            docs = [d for d in yaml.safe_load_all(f) if d is not None]
        else:
            data = json.load(f)
            docs = data if isinstance(data, list) else [data]

    for index, doc in enumerate(docs):
        is_valid, error = validate_config_document(doc)
        if not is_valid:
            raise ValidationError(f"{filename}: document {index}: {error}")
    return docs


class Workspace:
    """Wires kinds, stores and persisted state together for CLI commands."""

    def __init__(
        self,
        config: Config,
        registry: KindRegistry,
        state: StateManager,
        store_factory: Callable[[ResourceKind], ObjectStore],
    ):
        self.config = config
        self.registry = registry
        self.state = state
        self.store_factory = store_factory
        self._controllers: Dict[str, ResourceController] = {}

    async def __aenter__(self) -> "Workspace":
        await self.state.connect()
        await self.state.initialize_schema()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.state.close()

    def controller(self, kind_name: str) -> ResourceController:
        if kind_name not in self._controllers:
            kind = self.registry.get_kind(kind_name)
            self._controllers[kind_name] = ResourceController(
                kind, self.store_factory(kind), self.config.controller
            )
        return self._controllers[kind_name]

    async def load(self, kind_name: str, address: str) -> Optional[ResourceData]:
        """Load persisted state and refresh it from the cluster."""
        controller = self.controller(kind_name)
        saved = await self.state.get_instance(kind_name, address)
        if saved is None or not saved.get("local_id"):
            return None

        data = ResourceData(
            model=FlatModel(controller.kind.schema, saved["model"]),
            id=saved["local_id"],
            state=ResourceState.PRESENT,
        )
        if await controller.read(data) is None:
            logger.warning(f"{kind_name}.{address} was deleted outside kubeconverge")
            return None
        return data

    async def save(
        self, kind_name: str, address: str, data: ResourceData, message=None
    ):
        await self.state.save_instance(
            kind_name,
            address,
            data.id,
            data.model.to_dict(),
            data.state.value,
            message,
        )

    async def apply(self, doc: Dict[str, Any]) -> str:
        """
        Create or update the instance described by a document.

        Returns:
            'created', 'updated' or 'unchanged'
        """
        kind_name, address = doc["kind"], doc["address"]
        controller = self.controller(kind_name)
        desired = FlatModel.from_config(controller.kind.schema, doc["config"])

        data = await self.load(kind_name, address)
        if data is None:
            data = ResourceData(model=desired)
            try:
                await controller.create(data)
            except Exception as e:
                # the object may already exist remotely, keep its ID
                if data.id:
                    await self.save(kind_name, address, data, str(e))
                raise
            await self.save(kind_name, address, data)
            return "created"

        changes = controller.kind.build_patch(data.model, desired)
        try:
            await controller.update(data, desired)
        except Exception as e:
            await self.save(kind_name, address, data, str(e))
            raise
        await self.save(kind_name, address, data)
        return "updated" if changes else "unchanged"

    async def plan(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Describe what apply would do, without mutating the cluster."""
        kind_name, address = doc["kind"], doc["address"]
        kind = self.controller(kind_name).kind
        desired = FlatModel.from_config(kind.schema, doc["config"])

        data = await self.load(kind_name, address)
        if data is None:
            return {"action": "create", "draft": kind.expand(desired)}

        document = kind.build_patch(data.model, desired)
        if not document:
            return {"action": "none"}
        return {"action": "update", "id": data.id, "patch": document.as_list()}

    async def import_instance(
        self, kind_name: str, address: str, object_id: str
    ) -> Optional[ResourceData]:
        """
        Bring an existing cluster object under management.

        Returns:
            The refreshed instance, or None if no object has that ID
        """
        if await self.state.get_instance(kind_name, address) is not None:
            raise ValueError(f"{kind_name}.{address} is already tracked")

        controller = self.controller(kind_name)
        data = ResourceData(
            model=FlatModel(controller.kind.schema),
            id=object_id,
            state=ResourceState.PRESENT,
        )
        if await controller.read(data) is None:
            return None
        await self.save(kind_name, address, data)
        return data

    async def destroy(self, kind_name: str, address: str) -> bool:
        saved = await self.state.get_instance(kind_name, address)
        if saved is None:
            return False

        controller = self.controller(kind_name)
        data = ResourceData(
            model=FlatModel(controller.kind.schema, saved["model"]),
            id=saved.get("local_id"),
            state=ResourceState.PRESENT,
        )
        if data.id:
            await controller.delete(data)
        await self.state.delete_instance(kind_name, address)
        return True


def _workspace() -> Workspace:
    """Build a workspace from environment configuration."""
    config = get_config()
    logging.basicConfig(level=config.logging.level, format=config.logging.format)

    registry = register_builtin_kinds()
    db = config.database
    state = StateManager(
        host=db.host,
        port=db.port,
        database=db.database,
        user=db.user,
        password=db.password,
        min_pool_size=db.min_pool_size,
        max_pool_size=db.max_pool_size,
    )
    return Workspace(
        config,
        registry,
        state,
        lambda kind: KubernetesObjectStore(kind, config.store),
    )


def _run(coro):
    try:
        return asyncio.run(coro)
    except (ReconcileError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@click.group()
def cli():
    """kubeconverge - reconcile declared resources against a cluster"""
    pass


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
def apply(filename):
    """Create or update the resources in a YAML/JSON file"""

    async def run():
        docs = load_documents(filename)
        async with _workspace() as ws:
            for doc in docs:
                action = await ws.apply(doc)
                click.echo(f"{doc['kind']}.{doc['address']}: {action}")

    _run(run())


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
def plan(filename):
    """Show the changes apply would make"""

    async def run():
        docs = load_documents(filename)
        async with _workspace() as ws:
            for doc in docs:
                result = await ws.plan(doc)
                click.echo(f"{doc['kind']}.{doc['address']}: {result['action']}")
                if result["action"] == "create":
                    click.echo(json.dumps(result["draft"], indent=2))
                elif result["action"] == "update":
                    click.echo(json.dumps(result["patch"], indent=2))

    _run(run())


@cli.command()
@click.argument("kind")
@click.argument("address")
@click.confirmation_option(prompt="Are you sure you want to destroy this resource?")
def destroy(kind, address):
    """Delete a resource from the cluster and forget its state"""

    async def run():
        async with _workspace() as ws:
            if await ws.destroy(kind, address):
                click.echo(f"{kind}.{address}: destroyed")
            else:
                click.echo(f"{kind}.{address}: not tracked", err=True)

    _run(run())


@cli.command(name="import")
@click.argument("kind")
@click.argument("address")
@click.argument("object_id")
def import_resource(kind, address, object_id):
    """Adopt an existing cluster object by its ID (name or namespace/name)"""

    async def run():
        async with _workspace() as ws:
            return await ws.import_instance(kind, address, object_id)

    data = _run(run())
    if data is None:
        click.echo(f"Error: {kind} {object_id} not found", err=True)
        raise SystemExit(1)
    click.echo(f"{kind}.{address}: imported {data.id}")


@cli.command(name="list")
@click.option("--kind", "-k", default=None, help="Only show this kind")
@click.option("--limit", "-l", default=100, help="Number of entries to show")
def list_instances(kind, limit):
    """List tracked resources"""

    async def run():
        async with _workspace() as ws:
            rows = await ws.state.list_instances(kind=kind, limit=limit)

        headers = ["Kind", "Address", "ID", "Status", "Updated"]
        table = [
            [
                row["kind"],
                row["address"],
                row.get("local_id") or "",
                row["status"],
                row.get("updated_at", ""),
            ]
            for row in rows
        ]
        click.echo(tabulate(table, headers=headers, tablefmt="grid"))

    _run(run())


@cli.command()
@click.argument("kind")
@click.argument("address")
@click.option("--output", "-o", type=click.Choice(["json", "yaml"]), default="json")
def show(kind, address, output):
    """Show the observed state of a resource"""

    async def run():
        async with _workspace() as ws:
            saved = await ws.state.get_instance(kind, address)

        if saved is None:
            click.echo(f"{kind}.{address}: not tracked", err=True)
            return
        result = {
            "kind": saved["kind"],
            "address": saved["address"],
            "id": saved.get("local_id"),
            "status": saved["status"],
            "model": saved["model"],
        }
        if output == "yaml":
            click.echo(yaml.dump(result, default_flow_style=False))
        else:
            click.echo(json.dumps(result, indent=2))

    _run(run())


if __name__ == "__main__":
    cli()
