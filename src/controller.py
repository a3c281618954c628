"""
Reconciliation Controller - Main reconciliation loop.

Similar to Kubernetes controllers, continuously reconciles the declared
manifest with the vendor objects it manages. Each pass refreshes every
declared object, creates, updates or replaces it as needed, and prunes
tracked objects that are no longer declared.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from config import ControllerConfig
from db import DatabaseManager, Operation
from errors import NotFoundError, ReconcileError
from manifest import ManifestError, ResourceDeclaration, load_manifest
from plugins import get_registry
from plugins.reconcilers.base import ReconcilerPlugin, ReconcileResult
from plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    """What happened to one object during a pass."""

    kind: str
    name: str
    operation: Operation
    success: bool
    message: str = ""
    object_id: Optional[str] = None


class Controller:
    """
    Main controller that implements the reconciliation loop.

    Persisted state lives in the database; the vendor API is only reached
    through the reconciler registered for each resource kind.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        registry: Optional[PluginRegistry] = None,
        config: Optional[ControllerConfig] = None,
    ):
        self.db = db_manager
        self.registry = registry or get_registry()
        self.config = config or ControllerConfig()
        self.reconcile_interval = self.config.reconcile_interval
        self.max_concurrent_reconciles = self.config.max_concurrent_reconciles
        self.semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        self.running = False
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Run reconciliation passes until stopped."""
        logger.info("Starting Reconciliation Controller")
        self.running = True
        self._shutdown_event.clear()

        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.reconcile_interval
                )
            except asyncio.TimeoutError:
                pass

    async def stop(self):
        """Stop the controller after the current pass."""
        logger.info("Stopping Reconciliation Controller")
        self.running = False
        self._shutdown_event.set()

    async def run_once(self) -> List[ReconcileOutcome]:
        """
        Run a single reconciliation pass over the manifest.

        Returns:
            One outcome per declared object, followed by one per pruned object.
            Empty if the manifest could not be loaded.
        """
        try:
            declarations = load_manifest(self.config.manifest_path)
        except ManifestError as e:
            logger.error(f"Skipping reconciliation pass: {e.message}")
            return []

        logger.info(f"Reconciling {len(declarations)} declared resource(s)")
        outcomes = list(
            await asyncio.gather(
                *(self.reconcile_resource(d) for d in declarations)
            )
        )

        if self.config.prune:
            declared = {d.key for d in declarations}
            outcomes.extend(await self.prune(declared))

        failed = sum(1 for o in outcomes if not o.success)
        if failed:
            logger.warning(
                f"Reconciliation pass finished with {failed} failure(s) "
                f"out of {len(outcomes)}"
            )
        else:
            logger.info(f"Reconciliation pass finished ({len(outcomes)} object(s))")
        return outcomes

    async def reconcile_resource(
        self, declaration: ResourceDeclaration
    ) -> ReconcileOutcome:
        """
        Reconcile a single declared object.

        Errors are logged and recorded in history; they never propagate, so
        one failing object does not abort the others.
        """
        async with self.semaphore:
            kind, name = declaration.key
            start_time = time.monotonic()
            operation = Operation.READ
            object_id = None

            try:
                reconciler = self.registry.get_reconciler(kind)
                config = reconciler.parse_config(declaration.spec)
                stored = await self.db.get_state(kind, name)
                object_id = (stored or {}).get("id")

                if stored is None:
                    if declaration.import_id:
                        operation = Operation.IMPORT
                        result = await reconciler.import_state(declaration.import_id)
                        if result.dropped:
                            raise NotFoundError(
                                f"cannot import {kind}/{name}: {result.message}"
                            )
                    else:
                        operation = Operation.CREATE
                        result = await reconciler.create(config)
                else:
                    operation, result = await self._converge(
                        reconciler, declaration, config, stored
                    )

                object_id = await self._persist(kind, name, reconciler, result)
                outcome = ReconcileOutcome(
                    kind, name, operation, True, result.message, object_id
                )

            except ReconcileError as e:
                logger.error(f"Failed to {operation.value} {kind}/{name}: {e.message}")
                if e.remote_object is not None:
                    await self._discard(reconciler, e.remote_object)
                outcome = ReconcileOutcome(
                    kind, name, operation, False, e.message, object_id
                )
            except Exception as e:
                logger.error(f"Error reconciling {kind}/{name}: {e}", exc_info=True)
                outcome = ReconcileOutcome(
                    kind, name, operation, False, f"Reconciliation error: {e}", object_id
                )

            await self._record(outcome, time.monotonic() - start_time)
            return outcome

    async def _converge(
        self,
        reconciler: ReconcilerPlugin,
        declaration: ResourceDeclaration,
        config: Any,
        stored: Dict[str, Any],
    ) -> Tuple[Operation, ReconcileResult]:
        """Refresh a tracked object and bring it in line with its declaration."""
        kind, name = declaration.key
        state = reconciler.state_from_dict(stored)

        refreshed = await reconciler.read(state)
        if refreshed.dropped:
            logger.info(f"{kind}/{name} vanished remotely, recreating")
            await self.db.remove_state(kind, name)
            return Operation.CREATE, await reconciler.create(config)

        state = refreshed.state
        changed = reconciler.diff(state, config)
        forces_replace = [f for f in changed if f in reconciler.replace_fields]

        if forces_replace:
            logger.info(
                f"{kind}/{name} must be replaced ({', '.join(sorted(forces_replace))} changed)"
            )
            await self._delete_remote(reconciler, state)
            await self.db.remove_state(kind, name)
            return Operation.REPLACE, await reconciler.create(config)

        if changed:
            logger.info(f"Updating {kind}/{name} ({', '.join(changed)} changed)")
            return Operation.UPDATE, await reconciler.update(state, config)

        return Operation.READ, refreshed

    async def prune(self, declared: Set[Tuple[str, str]]) -> List[ReconcileOutcome]:
        """Delete tracked objects that are no longer declared."""
        stale = [
            row
            for row in await self.db.list_states()
            if (row["kind"], row["name"]) not in declared
        ]
        if not stale:
            return []

        logger.info(f"Pruning {len(stale)} undeclared resource(s)")
        return list(await asyncio.gather(*(self._prune_one(row) for row in stale)))

    async def _prune_one(self, row: Dict[str, Any]) -> ReconcileOutcome:
        async with self.semaphore:
            kind, name = row["kind"], row["name"]
            object_id = row.get("object_id")
            start_time = time.monotonic()

            try:
                reconciler = self.registry.get_reconciler(kind)
                state = reconciler.state_from_dict(row["state"])
                await self._delete_remote(reconciler, state)
                await self.db.remove_state(kind, name)
                outcome = ReconcileOutcome(
                    kind, name, Operation.DELETE, True, "deleted", object_id
                )
            except ReconcileError as e:
                logger.error(f"Failed to delete {kind}/{name}: {e.message}")
                outcome = ReconcileOutcome(
                    kind, name, Operation.DELETE, False, e.message, object_id
                )
            except Exception as e:
                logger.error(f"Error deleting {kind}/{name}: {e}", exc_info=True)
                outcome = ReconcileOutcome(
                    kind, name, Operation.DELETE, False, f"Deletion error: {e}", object_id
                )

            await self._record(outcome, time.monotonic() - start_time)
            return outcome

    async def _delete_remote(self, reconciler: ReconcilerPlugin, state: Any) -> None:
        try:
            await reconciler.delete(state)
        except NotFoundError:
            logger.info(f"{reconciler.name} {state.id} already gone")

    async def _discard(self, reconciler: ReconcilerPlugin, remote_object: Any) -> None:
        # No state is saved for a failed create; the next pass creates again.
        try:
            await reconciler.discard(remote_object)
        except NotFoundError:
            pass
        except Exception as e:
            logger.error(
                f"Could not remove {reconciler.name} left by a failed create: {e}"
            )

    async def _persist(
        self,
        kind: str,
        name: str,
        reconciler: ReconcilerPlugin,
        result: ReconcileResult,
    ) -> str:
        state = result.state
        await self.db.save_state(kind, name, state.id, reconciler.state_to_dict(state))
        return state.id

    async def _record(self, outcome: ReconcileOutcome, duration_seconds: float) -> None:
        try:
            await self.db.record_reconciliation(
                kind=outcome.kind,
                name=outcome.name,
                operation=outcome.operation,
                success=outcome.success,
                message=outcome.message,
                object_id=outcome.object_id,
                duration_seconds=duration_seconds,
            )
        except Exception as e:
            logger.error(
                f"Could not record history for {outcome.kind}/{outcome.name}: {e}"
            )
