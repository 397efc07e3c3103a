"""
Sync Engine - main orchestration for sync operations.

Coordinates all components of a run:
- Source adapter for reading records
- Entity handler for validation, duplicate detection and persistence
- Identity registry for foreign key translation
- Delta store for incremental checkpoints

Each record goes through
Read -> Annotate -> ResolveFK -> Validate -> DuplicateCheck -> Import
-> RegisterMapping -> Accumulate. Failures are recorded against the
record and the run continues; only ConnectionFailed aborts it.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from datasync.config import DuplicatePolicy, Settings, SyncOptions
from datasync.core.context import ImportContext, import_mode
from datasync.core.delta import DeltaStore
from datasync.core.filters import FilterSet
from datasync.core.registry import IdentityRegistry
from datasync.core.result import Action, SyncResult
from datasync.exceptions import (
    ConfigurationError,
    ConnectionFailed,
    DataSyncError,
    DuplicateEntity,
    FKResolutionFailed,
    ImportFailed,
    ValidationFailed,
)
from datasync.handlers import EntityHandler, HandlerRegistry, build_handlers
from datasync.storage.sqlite import SQLiteStore, open_store
from datasync.utils.logger import SyncLogger, get_logger

if TYPE_CHECKING:
    from datasync.adapters.base import RawRecord, SourceAdapter

logger = get_logger(__name__)

# Receives per-record and throughput messages
ProgressCallback = Callable[[str], None]


class SyncEngine:
    """
    Sync engine for one source system.

    Example:
        engine = SyncEngine(
            handlers=handlers,
            registry=IdentityRegistry(store),
            delta=DeltaStore(store),
            adapter=CsvAdapter({"file_path": "customers.csv"}),
            source_system="legacy",
            options=SyncOptions(on_duplicate="skip"),
            on_progress=print,
        )
        result = engine.sync("customer")
    """

    def __init__(
        self,
        handlers: HandlerRegistry,
        registry: IdentityRegistry,
        delta: DeltaStore,
        adapter: "SourceAdapter | None" = None,
        source_system: str = "",
        filters: FilterSet | None = None,
        options: SyncOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Initialize sync engine.

        Args:
            handlers: Entity handlers, resolved once
            registry: Identity registry (its cache lives as long as the engine)
            delta: Checkpoint store
            adapter: Source adapter
            source_system: Identifier of the source system
            filters: Filters handed to the adapter
            options: Engine options (duplicate policy, dry run, strictness)
            on_progress: Optional progress callback
        """
        self.handlers = handlers
        self.registry = registry
        self.delta = delta
        self.adapter = adapter
        self.source_system = source_system
        self.filters = filters or FilterSet()
        self.options = options.model_copy() if options else SyncOptions()
        self.on_progress = on_progress

    @property
    def on_duplicate(self) -> DuplicatePolicy:
        return self.options.on_duplicate

    @on_duplicate.setter
    def on_duplicate(self, mode: DuplicatePolicy | str) -> None:
        try:
            self.options.on_duplicate = DuplicatePolicy(mode)
        except ValueError:
            valid = ", ".join(p.value for p in DuplicatePolicy)
            raise ConfigurationError(
                f"Invalid duplicate mode: {mode}. Must be one of: {valid}"
            ) from None

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    def _progress(self, message: str) -> None:
        logger.debug(message)
        if self.on_progress:
            self.on_progress(message)

    def _validate_prerequisites(self, entity_type: str) -> EntityHandler:
        if self.adapter is None:
            raise ConfigurationError("Source adapter not set.")
        if not self.source_system:
            raise ConfigurationError("Source system not set.")
        # Assignments through pydantic models skip validation
        self.on_duplicate = self.options.on_duplicate

        handler = self.handlers.get(entity_type)

        if entity_type not in self.adapter.supported_entities():
            raise ConfigurationError(
                f"Adapter {self.adapter.code} does not support entity type: {entity_type}",
                entity_type=entity_type,
            )

        if not self.adapter.validate():
            raise ConnectionFailed(
                f"Adapter {self.adapter.code} validation failed",
                {"adapter": self.adapter.code},
            )
        return handler

    def sync(self, entity_type: str, *, incremental: bool = False) -> SyncResult:
        """
        Sync one entity type.

        Args:
            entity_type: Entity type to read and import
            incremental: Only read records above the last checkpointed id

        Returns:
            SyncResult of the run

        Raises:
            ConfigurationError: engine or adapter misconfigured
            EntityHandlerNotFound: no handler for the entity type
            ConnectionFailed: the source became unavailable or the run
                aborted for another reason; the partial result is attached
                as `exc.result`
        """
        result = SyncResult(
            entity_type=entity_type,
            source_system=self.source_system,
            dry_run=self.dry_run,
        )
        log = SyncLogger(logger, self.source_system, entity_type)

        try:
            handler = self._validate_prerequisites(entity_type)
        except ConnectionFailed as e:
            result.add_exception(0, e)
            result.finish()
            e.result = result
            log.failure(f"Sync failed: {e.message}", e)
            raise

        assert self.adapter is not None
        read_filters = self.filters
        if incremental:
            last_id = self.delta.get_last_synced_id(self.source_system, entity_type)
            if last_id is not None:
                read_filters = self.filters.with_id_floor(last_id + 1)
                log.info(f"Incremental sync of {entity_type} from id {last_id + 1}")

        if read_filters.entity_ids:
            self.registry.preload_cache(self.source_system, entity_type, read_filters.entity_ids)

        log.info(f"Starting sync for {entity_type} from {self.source_system}")
        log.info(f"Filters: {json.dumps(read_filters.model_dump(mode='json', exclude_none=True))}")
        if self.dry_run:
            log.info("DRY RUN MODE - No data will be imported")

        with import_mode(
            self.source_system,
            entity_type,
            dry_run=self.dry_run,
            strict=self.options.strict,
            entity_options=self.options.entity_options,
        ) as context:
            try:
                handler.start_sync(context)
                self._run(handler, entity_type, read_filters, context, result, log)
            except ConnectionFailed as e:
                result.finish()
                e.result = result
                log.failure(f"Sync failed: {e.message}", e)
                raise
            except Exception as e:
                # Only ConnectionFailed leaves sync() once records are flowing
                result.add_exception(0, e)
                result.finish()
                failure = ConnectionFailed(
                    f"Sync of {entity_type} aborted: {e}",
                    {"adapter": self.adapter.code},
                )
                failure.result = result
                log.failure(f"Sync failed: {failure.message}", e)
                raise failure from e

        if not self.dry_run:
            self.delta.update_from_result(
                self.source_system,
                entity_type,
                self.adapter.code,
                result,
                self.filters,
            )

        log.info(result.summary())
        return result

    def _run(
        self,
        handler: EntityHandler,
        entity_type: str,
        filters: FilterSet,
        context: ImportContext,
        result: SyncResult,
        log: SyncLogger,
    ) -> None:
        """Drive the record loop, then post-processing."""
        assert self.adapter is not None
        interval = self.options.progress_interval
        start_time = time.time()
        last_progress_time = start_time
        last_progress_count = 0
        position = 0

        records = iter(self.adapter.read(entity_type, filters))
        while True:
            try:
                raw = next(records)
            except StopIteration:
                break
            except ConnectionFailed as e:
                # The source failed before yielding the next record
                result.add_exception(position + 1, e)
                raise
            except Exception as e:
                failure = ConnectionFailed(
                    f"Reading {entity_type} from {self.adapter.code} failed after "
                    f"{position} record(s): {e}",
                    {"adapter": self.adapter.code},
                )
                result.add_exception(position + 1, failure)
                raise failure from e
            position += 1

            if position % interval == 0:
                now = time.time()
                elapsed = now - start_time
                interval_elapsed = now - last_progress_time
                overall = position / elapsed if elapsed > 0 else 0.0
                current = (position - last_progress_count) / interval_elapsed if interval_elapsed > 0 else 0.0
                self._progress(
                    "Progress: %d records | %.1f rec/s (current: %.1f rec/s)"
                    % (position, overall, current)
                )
                last_progress_time = now
                last_progress_count = position

            source_id = position
            try:
                if not isinstance(raw, dict):
                    raise ValidationFailed(
                        f"Record at position {position} is not a mapping: {type(raw).__name__}",
                        entity_type=entity_type,
                        source_system=self.source_system,
                    )
                record = self._annotate(raw)
                source_id = self._source_id(handler, record, position)
                self._process(handler, entity_type, record, source_id, context, result)
            except ConnectionFailed as e:
                result.add_exception(source_id, e)
                raise
            except Exception as e:
                result.add_exception(source_id, e)
                message = result.errors[-1].message
                log.failure(f"Failed to import {entity_type} #{source_id}: {message}", e, source_id)
                self._progress(f"ERROR: {message}")

        if not self.dry_run:
            handler.finish_sync(self.registry, context)

        result.finish()

    def _annotate(self, raw: "RawRecord") -> dict[str, Any]:
        assert self.adapter is not None
        record = dict(raw)
        record["_source_system"] = self.source_system
        record["_adapter"] = self.adapter.code
        record["_on_duplicate"] = self.on_duplicate.value
        record["_entity_options"] = dict(self.options.entity_options)
        record["_strict"] = self.options.strict
        return record

    @staticmethod
    def _source_id(handler: EntityHandler, record: dict[str, Any], position: int) -> int:
        """Source id from the handler's id field, or the stream position."""
        value = record.get(handler.id_field)
        if value is None or value == "":
            return position
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationFailed(
                f"Invalid source id for {handler.entity_type}: {value!r}",
                entity_type=handler.entity_type,
            ) from None

    def _process(
        self,
        handler: EntityHandler,
        entity_type: str,
        record: dict[str, Any],
        source_id: int,
        context: ImportContext,
        result: SyncResult,
    ) -> None:
        """Run one record through the pipeline and record its outcome."""
        self._resolve_foreign_keys(handler, record)

        errors = self._validate_record(handler, record)
        if errors:
            message = "; ".join(errors)
            if self.options.skip_invalid:
                result.add_skipped(source_id, None, f"Validation failed: {message}")
                self._progress(f"Skipped invalid {entity_type} #{source_id}: {message}")
                return
            raise ValidationFailed(
                f"Validation failed for {entity_type} #{source_id}: {message}",
                errors=errors,
                entity_type=entity_type,
                source_id=source_id,
                source_system=self.source_system,
            )

        existing_id = handler.find_existing(record)
        if existing_id is not None:
            policy = self.on_duplicate
            if policy == DuplicatePolicy.SKIP:
                result.add_skipped(source_id, existing_id, "Duplicate - skipped")
                self._progress(f"Skipped {entity_type} #{source_id} (exists as #{existing_id})")
                return
            if policy == DuplicatePolicy.ERROR:
                raise DuplicateEntity(entity_type, source_id, existing_id, self.source_system)
            record["_existing_id"] = existing_id
            record["_action"] = "merge" if policy == DuplicatePolicy.MERGE else "update"

        if self.dry_run:
            if existing_id is not None:
                action = Action.WOULD_MERGE if record["_action"] == "merge" else Action.WOULD_UPDATE
                result.add_success(source_id, existing_id, action)
                self._progress(f"Would {action.value[6:]} {entity_type} #{source_id} (existing #{existing_id})")
            else:
                result.add_success(source_id, 0, Action.WOULD_CREATE)
                self._progress(f"Would create {entity_type} #{source_id}")
            return

        try:
            target_id = handler.import_record(record, self.registry, context)
        except DataSyncError:
            raise
        except Exception as e:
            raise ImportFailed(entity_type, source_id, self.source_system, str(e)) from e

        if existing_id is None:
            action = Action.CREATED
        elif record["_action"] == "merge":
            action = Action.MERGED
        else:
            action = Action.UPDATED

        self.registry.register(
            self.source_system,
            entity_type,
            source_id,
            target_id,
            handler.external_ref(record),
        )
        result.add_success(source_id, target_id, action)
        self._progress(f"{action.value} {entity_type} #{source_id} -> #{target_id}")

    def _resolve_foreign_keys(self, handler: EntityHandler, record: dict[str, Any]) -> None:
        """Translate foreign key fields from source ids to target ids, in place."""
        for field, spec in handler.foreign_keys().items():
            value = record.get(field)

            if value is None or value == "":
                if spec.ref_field and record.get(spec.ref_field) not in (None, ""):
                    target_id = self.registry.resolve_by_external_ref(
                        spec.entity_type,
                        str(record[spec.ref_field]),
                        self.source_system,
                    )
                    if target_id is not None:
                        record[field] = target_id
                continue

            try:
                fk_source_id = int(value)
            except (TypeError, ValueError):
                fk_source_id = None

            target_id = None
            if fk_source_id is not None:
                target_id = self.registry.resolve(self.source_system, spec.entity_type, fk_source_id)

            if target_id is None and spec.required:
                raise FKResolutionFailed(handler.entity_type, field, value, self.source_system)

            record[field] = target_id
            record[f"_original_{field}"] = value

    def _validate_record(self, handler: EntityHandler, record: dict[str, Any]) -> list[str]:
        errors = []
        missing = [f for f in handler.required_fields if record.get(f) is None or record.get(f) == ""]
        if missing:
            errors.append(f"Missing required fields: {', '.join(missing)}")

        errors.extend(handler.validate(record))

        warnings = handler.warnings(record)
        if warnings:
            if self.options.strict:
                errors.extend(warnings)
            else:
                for warning in warnings:
                    logger.warning(f"{handler.entity_type}: {warning}")
        return errors


def create_engine(
    settings: Settings,
    adapter: "SourceAdapter",
    store: SQLiteStore | None = None,
    filters: FilterSet | None = None,
    on_progress: ProgressCallback | None = None,
) -> SyncEngine:
    """
    Build an engine from settings.

    Args:
        settings: Application settings
        adapter: Configured source adapter
        store: Target store (opened from settings.storage when omitted)
        filters: Read filters
        on_progress: Optional progress callback
    """
    if store is None:
        store = open_store(Path(settings.storage.database_path))

    return SyncEngine(
        handlers=build_handlers(settings, store),
        registry=IdentityRegistry(store),
        delta=DeltaStore(store),
        adapter=adapter,
        source_system=settings.source_system,
        filters=filters,
        options=settings.sync,
        on_progress=on_progress,
    )
