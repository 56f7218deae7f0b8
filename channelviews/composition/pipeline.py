"""
View composition pipeline.

Every request runs one ``CompositionPipeline`` which walks a fixed, ordered
subset of these stages:

  Stage            │ Work
  ─────────────────┼─────────────────────────────────────────────────────
  parameters       │ parse identifiers / tags / text, resolve the viewer
  paginated        │ page window + deterministic sort (no store access)
  joined           │ anchor check, base find + joins, total count
  aggregated       │ per-row counts and sums, or the fixed summary shape
  enriched         │ viewer-relative booleans
  projected        │ allowlist projection, page envelope

Stages never repeat or go backwards. An error in any stage aborts the run
with the stage recorded on the error; no partial result is returned.
"""
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Optional, Sequence, Union

from opentelemetry import trace

from channelviews.composition.aggregates import Aggregate, apply_aggregates, total
from channelviews.composition.fanout import fan_out
from channelviews.composition.joins import JoinResolver, JoinSpec, validate_joins
from channelviews.composition.pagination import PageWindow, paginate, window_params
from channelviews.composition.projection import Entry, Field, check_allowlist, project_all
from channelviews.composition.viewer import ViewerFlag, apply_viewer_flags
from channelviews.errors import (
    CompositionError,
    NotFoundError,
    ShapeError,
    StoreUnavailableError,
    ValidationError,
    ViewerRequiredError,
)
from channelviews.identifiers import Identifier, TargetKind
from channelviews.store.base import Direction, EntityStore
from channelviews.store.schema import schema_for
from channelviews.telemetry import COMPOSE_FAILURES_TOTAL, COMPOSE_LATENCY, ROWS_JOINED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class Stage(str, enum.Enum):
    PARAMETERS_VALIDATED = "parameters_validated"
    PAGINATED = "paginated"
    JOINED = "joined"
    AGGREGATED = "aggregated"
    ENRICHED = "enriched"
    PROJECTED = "projected"
    DONE = "done"


STAGE_ORDER = {stage: index for index, stage in enumerate(Stage)}


# ──────────────────────────── View declarations ───────────────────────────

@dataclass(frozen=True)
class Param:
    name: str
    kind: Literal["identifier", "target_kind", "text", "viewer"] = "identifier"
    required: bool = True
    lower: bool = False
    choices: tuple = ()
    default: Any = None


@dataclass(frozen=True)
class Anchor:
    """Entity that must exist for the view to make sense (else NotFoundError)."""

    param: str
    collection: Union[str, Callable[[Mapping[str, Any]], str]]
    label: str

    def collection_for(self, params: Mapping[str, Any]) -> str:
        if callable(self.collection):
            return self.collection(params)
        return self.collection


@dataclass(frozen=True)
class Total:
    output: str
    kind: Literal["rows", "sum"] = "rows"
    value_field: Optional[str] = None


@dataclass(frozen=True)
class ExternalCount:
    output: str
    collection: str
    match: Callable[[Mapping[str, Any]], dict]


@dataclass(frozen=True)
class Summary:
    totals: tuple[Total, ...] = ()
    counts: tuple[ExternalCount, ...] = ()


@dataclass(frozen=True)
class ViewDefinition:
    name: str
    collection: str
    stages: tuple[Stage, ...]
    match: Callable[[Mapping[str, Any]], dict]
    params: tuple[Param, ...] = ()
    anchor: Optional[Anchor] = None
    joins: tuple[JoinSpec, ...] = ()
    aggregates: tuple[Aggregate, ...] = ()
    flags: tuple[ViewerFlag, ...] = ()
    fields: tuple[Entry, ...] = ()
    sortable: Mapping[str, str] = field(default_factory=dict)
    default_sort: str = "createdAt"
    summary: Optional[Summary] = None
    single: bool = False

    def __post_init__(self) -> None:
        _check_definition(self)


def _check_definition(view: ViewDefinition) -> None:
    """Structural checks run once, when the view is declared."""
    stages = view.stages
    if not stages or stages[0] is not Stage.PARAMETERS_VALIDATED:
        raise ShapeError(f"{view.name}: first stage must be {Stage.PARAMETERS_VALIDATED.value}")
    if Stage.DONE in stages:
        raise ShapeError(f"{view.name}: '{Stage.DONE.value}' is implicit")
    if any(STAGE_ORDER[a] >= STAGE_ORDER[b] for a, b in zip(stages, stages[1:])):
        raise ShapeError(f"{view.name}: stages must be strictly ordered")
    if Stage.JOINED not in stages:
        raise ShapeError(f"{view.name}: every view reads the store in '{Stage.JOINED.value}'")
    if (Stage.PROJECTED in stages) == (view.summary is not None):
        raise ShapeError(f"{view.name}: a view ends in either a projection or a summary")
    if view.summary is not None and stages[-1] is not Stage.AGGREGATED:
        raise ShapeError(f"{view.name}: summary views terminate at '{Stage.AGGREGATED.value}'")
    if view.aggregates and Stage.AGGREGATED not in stages:
        raise ShapeError(f"{view.name}: aggregates declared without an aggregation stage")
    if view.flags and Stage.ENRICHED not in stages:
        raise ShapeError(f"{view.name}: viewer flags declared without an enrichment stage")
    if view.single and Stage.PAGINATED in stages:
        raise ShapeError(f"{view.name}: single-object views are not paginated")
    param_names = {p.name for p in view.params}
    if view.anchor is not None and view.anchor.param not in param_names:
        raise ShapeError(f"{view.name}: anchor parameter '{view.anchor.param}' is not declared")

    base = schema_for(view.collection)
    validate_joins(view.collection, view.joins)
    joins = {spec.as_field: spec for spec in view.joins}

    if Stage.PAGINATED in stages:
        if view.default_sort not in view.sortable:
            raise ShapeError(f"{view.name}: default sort '{view.default_sort}' is not sortable")
        for column in view.sortable.values():
            base.require(column)

    for aggregate in view.aggregates:
        spec = joins.get(aggregate.source)
        if spec is None:
            raise ShapeError(f"{view.name}: aggregate '{aggregate.output}' reads unknown array '{aggregate.source}'")
        if aggregate.value_field is not None:
            schema_for(spec.collection).require(aggregate.value_field)
    for flag in view.flags:
        spec = joins.get(flag.source)
        if spec is None:
            raise ShapeError(f"{view.name}: flag '{flag.output}' reads unknown array '{flag.source}'")
        schema_for(spec.collection).require(flag.actor_field)
    if view.summary is not None:
        for item in view.summary.totals:
            if item.kind == "sum":
                if item.value_field is None:
                    raise ShapeError(f"{view.name}: total '{item.output}' needs a value field")
                if item.value_field not in base.fields | {a.output for a in view.aggregates}:
                    raise ShapeError(f"{view.name}: total '{item.output}' sums unknown field")
        for count in view.summary.counts:
            schema_for(count.collection)

    check_allowlist(view.fields)
    available = (
        set(base.fields)
        | set(joins)
        | {a.output for a in view.aggregates}
        | {f.output for f in view.flags}
    )
    _check_entries(view.name, view.fields, available, joins)


def _check_entries(
    view: str,
    entries: Sequence[Entry],
    available: set,
    joins: Mapping[str, JoinSpec],
) -> None:
    for entry in entries:
        if isinstance(entry, Field):
            if entry.key not in available:
                raise ShapeError(f"{view}: allow-listed field '{entry.key}' does not exist")
            continue
        spec = joins.get(entry.source)
        if spec is None:
            raise ShapeError(f"{view}: nested '{entry.name}' is not backed by a join")
        inner = {child.as_field: child for child in spec.nested}
        _check_entries(
            view,
            entry.fields,
            set(schema_for(spec.collection).fields) | set(inner),
            inner,
        )


# ──────────────────────────── Pipeline ────────────────────────────────────

class CompositionPipeline:
    def __init__(
        self,
        store: EntityStore,
        view: ViewDefinition,
        parameters: Optional[Mapping[str, Any]] = None,
        viewer_identity: Any = None,
    ) -> None:
        self.store = store
        self.view = view
        self.raw = dict(parameters or {})
        self.raw_viewer = viewer_identity
        self.resolver = JoinResolver(store)

        self.state: Optional[Stage] = None
        self.params: dict[str, Any] = {}
        self.viewer: Optional[Identifier] = None
        self.window: Optional[PageWindow] = None
        self.rows: list[dict] = []
        self.total_rows: Optional[int] = None
        self.result: Any = None

    async def run(self) -> Any:
        handlers = {
            Stage.PARAMETERS_VALIDATED: self._validate,
            Stage.PAGINATED: self._paginate,
            Stage.JOINED: self._join,
            Stage.AGGREGATED: self._aggregate,
            Stage.ENRICHED: self._enrich,
            Stage.PROJECTED: self._project,
        }
        started = time.perf_counter()
        with tracer.start_as_current_span("compose") as span:
            span.set_attribute("view.type", self.view.name)
            span.set_attribute("viewer.anonymous", self.raw_viewer is None)
            for stage in self.view.stages:
                await self._run_stage(stage, handlers[stage])
            self._advance(Stage.DONE)

        COMPOSE_LATENCY.labels(view=self.view.name).observe(time.perf_counter() - started)
        return self.result

    async def _run_stage(self, stage: Stage, handler: Callable) -> None:
        with tracer.start_as_current_span(f"compose.{stage.value}") as span:
            try:
                await handler(span)
            except CompositionError as exc:
                self._failed(stage, exc)
                raise exc.at(stage.value)
            except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
                error = ShapeError(f"{type(exc).__name__}: {exc}", stage=stage.value)
                self._failed(stage, error)
                raise error from exc
        self._advance(stage)

    def _advance(self, stage: Stage) -> None:
        if self.state is not None and STAGE_ORDER[stage] <= STAGE_ORDER[self.state]:
            raise RuntimeError(f"Stage {stage.value} cannot follow {self.state.value}")
        self.state = stage

    def _failed(self, stage: Stage, exc: CompositionError) -> None:
        COMPOSE_FAILURES_TOTAL.labels(
            view=self.view.name, stage=stage.value, error=type(exc).__name__
        ).inc()
        if isinstance(exc, (ShapeError, StoreUnavailableError)):
            logger.error("Composing %s failed at %s: %s", self.view.name, stage.value, exc.message)
        else:
            logger.info("Rejected %s at %s: %s", self.view.name, stage.value, exc.message)

    # ── Stages ────────────────────────────────────────────────────────────

    async def _validate(self, span) -> None:
        if self.raw_viewer is not None:
            self.viewer = Identifier.parse(self.raw_viewer)
        for param in self.view.params:
            self.params[param.name] = self._parse_param(param)

    def _parse_param(self, param: Param) -> Any:
        if param.kind == "viewer":
            if self.viewer is None:
                raise ViewerRequiredError(f"{self.view.name} requires a signed-in viewer")
            return self.viewer

        raw = self.raw.get(param.name)
        if isinstance(raw, str):
            raw = raw.strip()
        if raw is None or raw == "":
            if param.required:
                raise ValidationError(f"'{param.name}' is required")
            return param.default

        if param.kind == "identifier":
            return Identifier.parse(raw)
        if param.kind == "target_kind":
            kind = TargetKind.parse(raw)
            if param.choices and kind not in param.choices:
                allowed = ", ".join(k.value for k in param.choices)
                raise ValidationError(f"'{param.name}' must be one of: {allowed}")
            return kind
        text = str(raw)
        return text.lower() if param.lower else text

    async def _paginate(self, span) -> None:
        self.window = paginate(
            **window_params(self.raw),
            sortable=self.view.sortable,
            default_sort=self.view.default_sort,
        )
        span.set_attribute("page", self.window.page)
        span.set_attribute("page.size", self.window.size)

    async def _join(self, span) -> None:
        view = self.view
        if view.anchor is not None:
            await self._check_anchor(view.anchor)

        predicate = view.match(self.params)
        if self.window is not None:
            window = self.window
            self.rows, self.total_rows = await fan_out(
                self.resolver.resolve(
                    view.collection,
                    predicate,
                    view.joins,
                    sort=window.sort,
                    skip=window.offset,
                    limit=window.limit,
                ),
                self.store.count(view.collection, predicate),
            )
        else:
            self.rows = await self.resolver.resolve(
                view.collection,
                predicate,
                view.joins,
                sort=(("id", Direction.ASC),),
                limit=1 if view.single else None,
            )
            if view.single and not self.rows:
                raise NotFoundError(f"{view.name}: nothing matches the requested entity")

        ROWS_JOINED_TOTAL.labels(view=view.name).inc(len(self.rows))
        span.set_attribute("rows", len(self.rows))

    async def _check_anchor(self, anchor: Anchor) -> None:
        identifier = self.params.get(anchor.param)
        if identifier is None:
            return
        found = await self.store.count(anchor.collection_for(self.params), {"id": identifier})
        if not found:
            raise NotFoundError(f"{anchor.label} not found")

    async def _aggregate(self, span) -> None:
        self.rows = apply_aggregates(self.rows, self.view.aggregates)
        summary = self.view.summary
        if summary is None:
            return

        counts = await fan_out(
            *(self.store.count(c.collection, c.match(self.params)) for c in summary.counts)
        )
        result = {}
        for item in summary.totals:
            if item.kind == "rows":
                result[item.output] = len(self.rows)
            else:
                result[item.output] = total(self.rows, item.value_field)
        for count, value in zip(summary.counts, counts):
            result[count.output] = value
        self.result = result

    async def _enrich(self, span) -> None:
        self.rows = apply_viewer_flags(self.rows, self.view.flags, self.viewer)

    async def _project(self, span) -> None:
        items = project_all(self.rows, self.view.fields)
        if self.view.single:
            self.result = items[0]
        elif self.window is not None:
            self.result = self.window.envelope(items, self.total_rows or 0)
        else:
            self.result = items
