"""Public directory listings: URL parameters in, filtered and paginated rows out.

Parsing is forgiving: an unusable parameter is dropped and simply widens the
result set. The ``*_or_empty`` wrappers never raise, so an unreachable backend
shows up as an empty page plus a warning in the logs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from taskforce.core.auth import Principal
from taskforce.core.config import Settings
from taskforce.services.database import DatabaseSession, RepositoryError
from taskforce.services.query import Filter, Query, escape_like, table

logger = logging.getLogger(__name__)

PAGE_SIZE = 25
FILTER_OPTIONS_LIMIT = 2000
DEFAULT_MARKER_LIMIT = 2000
TRUE_VALUES = {"1", "true", "yes", "on"}

RawParams = Mapping[str, str | Sequence[str]]


@dataclass(frozen=True, slots=True)
class FilterField:
    key: str
    column: str
    kind: str
    value_type: str = "string"
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ListingSpec:
    name: str
    source: str
    list_columns: tuple[str, ...]
    marker_columns: tuple[str, ...]
    lat_column: str
    lng_column: str
    search_columns: tuple[str, ...]
    sort_columns: tuple[str, ...]
    default_sort: str
    default_descending: bool
    visibility_column: str
    visible_status: str
    filters: tuple[FilterField, ...] = ()
    nulls_last: bool = False
    marker_limit: int = DEFAULT_MARKER_LIMIT
    option_columns: tuple[str, ...] = ()
    owner_column: str | None = None
    extra_filters: Callable[[Query, RawParams], Query] | None = None


@dataclass(slots=True)
class ListingPage:
    rows: list[dict[str, Any]] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_count: int = 1

    @classmethod
    def empty(cls, page: int = 1) -> ListingPage:
        return cls(rows=[], total_count=0, page=page, page_count=1)


def _values(raw: RawParams, key: str) -> list[str]:
    value = raw.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [item for item in value if isinstance(item, str)]


def parse_string(raw: RawParams, key: str) -> str | None:
    for value in _values(raw, key):
        stripped = value.strip()
        if stripped:
            return stripped
    return None


def parse_string_list(raw: RawParams, *keys: str) -> list[str]:
    items: list[str] = []
    for key in keys:
        for value in _values(raw, key):
            for chunk in value.split(","):
                stripped = chunk.strip()
                if stripped and stripped not in items:
                    items.append(stripped)
    return items


def _to_number(value: str) -> float | None:
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_number(raw: RawParams, key: str) -> float | None:
    value = parse_string(raw, key)
    if value is None:
        return None
    return _to_number(value)


def parse_number_list(raw: RawParams, *keys: str) -> list[float]:
    numbers: list[float] = []
    for item in parse_string_list(raw, *keys):
        number = _to_number(item)
        if number is not None and number not in numbers:
            numbers.append(number)
    return numbers


def parse_date(raw: RawParams, key: str) -> date | None:
    value = parse_string(raw, key)
    if value is None:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def parse_bool(raw: RawParams, *keys: str) -> bool:
    return any((parse_string(raw, key) or "").lower() in TRUE_VALUES for key in keys)


def parse_page(raw: RawParams) -> int:
    number = parse_number(raw, "page")
    if number is None:
        return 1
    return max(1, math.floor(number))


def parse_sort(raw: RawParams, allowed: Sequence[str], default: str) -> str:
    value = parse_string(raw, "sort")
    return value if value in allowed else default


def parse_dir(raw: RawParams, default_descending: bool) -> bool:
    value = (parse_string(raw, "dir") or "").lower()
    if value == "asc":
        return False
    if value == "desc":
        return True
    return default_descending


def _coerce_for(value_type: str, number: float) -> float | int | None:
    if value_type == "int":
        return int(number) if number.is_integer() else None
    return number


def _field_values(raw: RawParams, item: FilterField) -> list[Any]:
    keys = (item.key, *item.aliases)
    if item.value_type in {"number", "int"}:
        coerced = [_coerce_for(item.value_type, number) for number in parse_number_list(raw, *keys)]
        return [value for value in coerced if value is not None]
    return parse_string_list(raw, *keys)


def _field_scalar(raw: RawParams, item: FilterField) -> Any:
    for key in (item.key, *item.aliases):
        if item.value_type == "date":
            value = parse_date(raw, key)
        else:
            number = parse_number(raw, key)
            value = None if number is None else _coerce_for(item.value_type, number)
        if value is not None:
            return value
    return None


def apply_filters(query: Query, spec: ListingSpec, raw: RawParams, principal: Principal | None = None) -> Query:
    include_own = parse_bool(raw, "include_own") and principal is not None and spec.owner_column is not None
    if include_own:
        query = query.any_of(
            Filter(spec.visibility_column, "eq", spec.visible_status),
            Filter(spec.owner_column, "eq", principal.subject),
        )
    else:
        query = query.eq(spec.visibility_column, spec.visible_status)

    search = parse_string(raw, "q")
    if search and spec.search_columns:
        pattern = f"%{escape_like(search)}%"
        query = query.any_of(*(Filter(column, "ilike", pattern) for column in spec.search_columns))

    for item in spec.filters:
        if item.kind == "in":
            values = _field_values(raw, item)
            if values:
                query = query.in_(item.column, values)
        elif item.kind == "contains":
            values = _field_values(raw, item)
            if values:
                query = query.contains(item.column, values)
        elif item.kind in {"gte", "lte"}:
            value = _field_scalar(raw, item)
            if value is not None:
                query = query.gte(item.column, value) if item.kind == "gte" else query.lte(item.column, value)
        elif item.kind == "flag":
            if parse_bool(raw, item.key, *item.aliases):
                query = query.eq(item.column, True)

    if spec.extra_filters is not None:
        query = spec.extra_filters(query, raw)
    return query


async def find(
    session: DatabaseSession,
    spec: ListingSpec,
    raw: RawParams,
    principal: Principal | None = None,
) -> ListingPage:
    page = parse_page(raw)
    sort = parse_sort(raw, spec.sort_columns, spec.default_sort)
    descending = parse_dir(raw, spec.default_descending)

    query = table(spec.source).select(spec.list_columns, count=True)
    query = apply_filters(query, spec, raw, principal)
    query = query.order(sort, descending=descending, nulls_last=spec.nulls_last).order("id")
    query = query.range((page - 1) * PAGE_SIZE, PAGE_SIZE)

    result = await session.execute(query)
    total = result.count or 0
    return ListingPage(
        rows=result.rows,
        total_count=total,
        page=page,
        page_count=max(1, math.ceil(total / PAGE_SIZE)),
    )


async def markers(
    session: DatabaseSession,
    spec: ListingSpec,
    raw: RawParams,
    principal: Principal | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    cap = min(limit or spec.marker_limit, spec.marker_limit, DEFAULT_MARKER_LIMIT)
    sort = parse_sort(raw, spec.sort_columns, spec.default_sort)
    descending = parse_dir(raw, spec.default_descending)

    query = table(spec.source).select(spec.marker_columns)
    query = apply_filters(query, spec, raw, principal)
    query = query.not_null(spec.lat_column).not_null(spec.lng_column)
    query = query.order(sort, descending=descending, nulls_last=spec.nulls_last).limit(cap)

    result = await session.execute(query)
    return [row for row in result.rows if _has_coordinates(row, spec)]


async def filter_options(session: DatabaseSession, spec: ListingSpec) -> dict[str, list[Any]]:
    if not spec.option_columns:
        return {}
    query = (
        table(spec.source)
        .select(spec.option_columns)
        .eq(spec.visibility_column, spec.visible_status)
        .limit(FILTER_OPTIONS_LIMIT)
    )
    result = await session.execute(query)
    options: dict[str, set[Any]] = {column: set() for column in spec.option_columns}
    for row in result.rows:
        for column in spec.option_columns:
            value = row.get(column)
            items = value if isinstance(value, list) else [value]
            for item in items:
                if isinstance(item, str):
                    item = item.strip()
                if item is not None and item != "":
                    options[column].add(item)
    return {column: sorted(values) for column, values in options.items()}


async def find_or_empty(database, spec: ListingSpec, raw: RawParams, principal: Principal | None = None) -> ListingPage:
    try:
        async with database.session(principal) as session:
            return await find(session, spec, raw, principal)
    except RepositoryError as exc:
        logger.warning("listing query failed entity=%s error=%s", spec.name, exc)
        return ListingPage.empty(parse_page(raw))


async def markers_or_empty(
    database,
    spec: ListingSpec,
    raw: RawParams,
    principal: Principal | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    try:
        async with database.session(principal) as session:
            return await markers(session, spec, raw, principal, limit)
    except RepositoryError as exc:
        logger.warning("marker query failed entity=%s error=%s", spec.name, exc)
        return []


async def filter_options_or_empty(database, spec: ListingSpec) -> dict[str, list[Any]]:
    try:
        async with database.session() as session:
            return await filter_options(session, spec)
    except RepositoryError as exc:
        logger.warning("filter options query failed entity=%s error=%s", spec.name, exc)
        return {column: [] for column in spec.option_columns}


def resolve_view(raw: RawParams, settings: Settings) -> str:
    """Map views need a tile token; without one every request falls back to the table."""
    if parse_string(raw, "view") == "map" and settings.map_enabled:
        return "map"
    return "table"


def _has_coordinates(row: dict[str, Any], spec: ListingSpec) -> bool:
    for column in (spec.lat_column, spec.lng_column):
        value = row.get(column)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return False
    return True


def _grant_filters(query: Query, raw: RawParams) -> Query:
    lifecycle = (parse_string(raw, "status") or "open").lower()
    if lifecycle != "all":
        query = query.eq("status", lifecycle)

    amount_min = parse_number(raw, "amount_min")
    if amount_min is not None:
        query = query.any_of(Filter("amount_min", "gte", amount_min), Filter("amount_max", "gte", amount_min))
    amount_max = parse_number(raw, "amount_max")
    if amount_max is not None:
        query = query.any_of(Filter("amount_min", "lte", amount_max), Filter("amount_max", "lte", amount_max))

    if parse_bool(raw, "upcoming_only"):
        today = datetime.now(timezone.utc).date()
        query = query.any_of(Filter("deadline", "gte", today), Filter("deadline", "is_null"))
    return query


PROJECTS = ListingSpec(
    name="projects",
    source="projects",
    list_columns=(
        "id",
        "slug",
        "name",
        "category",
        "place_name",
        "region",
        "country",
        "start_date",
        "end_date",
        "donations_received",
        "amount_needed",
        "currency",
        "thematic_area",
        "type_of_intervention",
        "partner_org_ids",
        "target_demographic",
        "lat",
        "lng",
        "status",
        "created_at",
    ),
    marker_columns=("id", "slug", "name", "category", "lat", "lng", "place_name", "description"),
    lat_column="lat",
    lng_column="lng",
    search_columns=("name", "place_name"),
    sort_columns=("created_at", "name", "amount_needed", "donations_received", "start_date"),
    default_sort="created_at",
    default_descending=True,
    visibility_column="status",
    visible_status="approved",
    owner_column="created_by",
    option_columns=("country", "region", "currency", "thematic_area", "type_of_intervention", "target_demographic"),
    filters=(
        FilterField("category", "category", "in", aliases=("type",)),
        FilterField("country", "country", "in"),
        FilterField("region", "region", "in"),
        FilterField("currency", "currency", "in"),
        FilterField("target_demographic", "target_demographic", "in"),
        FilterField("thematic_area", "thematic_area", "contains"),
        FilterField("type_of_intervention", "type_of_intervention", "contains"),
        FilterField("partner_org_ids", "partner_org_ids", "contains"),
        FilterField("min_needed", "amount_needed", "gte", "number"),
        FilterField("max_needed", "amount_needed", "lte", "number"),
        FilterField("min_received", "donations_received", "gte", "number"),
        FilterField("max_received", "donations_received", "lte", "number"),
        FilterField("min_lives", "lives_improved", "gte", "int"),
        FilterField("max_lives", "lives_improved", "lte", "int"),
        FilterField("start_from", "start_date", "gte", "date"),
        FilterField("end_to", "end_date", "lte", "date"),
    ),
)

ORGANISATIONS = ListingSpec(
    name="organisations",
    source="organisations_directory_v1",
    list_columns=(
        "id",
        "name",
        "description",
        "website",
        "based_in_country",
        "based_in_region",
        "thematic_tags",
        "intervention_tags",
        "demographic_tags",
        "funding_needed",
        "founded_at",
        "age_years",
        "followers_count",
        "projects_total_count",
        "projects_ongoing_count",
    ),
    marker_columns=("id", "name", "description", "based_in_country", "based_in_region", "lat", "lng"),
    lat_column="lat",
    lng_column="lng",
    search_columns=("name", "description"),
    sort_columns=("followers_count", "projects_total_count", "projects_ongoing_count", "funding_needed", "age_years"),
    default_sort="followers_count",
    default_descending=True,
    nulls_last=True,
    visibility_column="verification_status",
    visible_status="verified",
    marker_limit=250,
    option_columns=("based_in_country", "based_in_region", "thematic_tags", "intervention_tags", "demographic_tags"),
    filters=(
        FilterField("country", "based_in_country", "in"),
        FilterField("region", "based_in_region", "in"),
        FilterField("thematic", "thematic_tags", "contains"),
        FilterField("intervention", "intervention_tags", "contains"),
        FilterField("demographic", "demographic_tags", "contains"),
        FilterField("min_age", "age_years", "gte", "number"),
        FilterField("max_age", "age_years", "lte", "number"),
        FilterField("min_projects", "projects_total_count", "gte", "int"),
        FilterField("max_projects", "projects_total_count", "lte", "int"),
        FilterField("min_funding", "funding_needed", "gte", "number"),
        FilterField("max_funding", "funding_needed", "lte", "number"),
    ),
)

GRANTS = ListingSpec(
    name="grants",
    source="grants",
    list_columns=(
        "id",
        "slug",
        "title",
        "summary",
        "funder_name",
        "funding_type",
        "project_type",
        "currency",
        "amount_min",
        "amount_max",
        "deadline",
        "open_date",
        "eligible_countries",
        "location_name",
        "latitude",
        "longitude",
        "status",
        "created_at",
    ),
    marker_columns=("id", "slug", "title", "summary", "project_type", "latitude", "longitude", "location_name"),
    lat_column="latitude",
    lng_column="longitude",
    search_columns=("title", "summary", "funder_name"),
    sort_columns=("deadline", "amount_max", "created_at"),
    default_sort="deadline",
    default_descending=False,
    nulls_last=True,
    visibility_column="moderation_status",
    visible_status="approved",
    owner_column="created_by",
    option_columns=("eligible_countries", "themes"),
    extra_filters=_grant_filters,
    filters=(
        FilterField("project_type", "project_type", "in"),
        FilterField("funding_type", "funding_type", "in"),
        FilterField("eligible_countries", "eligible_countries", "contains", aliases=("country",)),
        FilterField("themes", "themes", "contains"),
        FilterField("sdgs", "sdgs", "contains", "int"),
        FilterField("remote_ok", "remote_ok", "flag", aliases=("remote_only",)),
        FilterField("deadline_from", "deadline", "gte", "date"),
        FilterField("deadline_to", "deadline", "lte", "date"),
    ),
)

WATCHDOG_ISSUES = ListingSpec(
    name="watchdog_issues",
    source="watchdog_issues",
    list_columns=(
        "id",
        "title",
        "description",
        "country",
        "region",
        "city",
        "latitude",
        "longitude",
        "sdgs",
        "global_challenges",
        "affected_demographics",
        "urgency",
        "date_observed",
        "created_at",
    ),
    marker_columns=("id", "title", "description", "country", "region", "city", "latitude", "longitude", "urgency"),
    lat_column="latitude",
    lng_column="longitude",
    search_columns=("title", "description"),
    sort_columns=("created_at", "urgency", "title"),
    default_sort="created_at",
    default_descending=True,
    visibility_column="status",
    visible_status="approved",
    owner_column="created_by",
    option_columns=("country", "region", "global_challenges", "affected_demographics"),
    filters=(
        FilterField("country", "country", "in"),
        FilterField("region", "region", "in"),
        FilterField("sdgs", "sdgs", "contains", "int"),
        FilterField("global_challenges", "global_challenges", "contains"),
        FilterField("demographics", "affected_demographics", "contains"),
        FilterField("urgency_min", "urgency", "gte", "int"),
        FilterField("urgency_max", "urgency", "lte", "int"),
        FilterField("date_from", "date_observed", "gte", "date"),
        FilterField("date_to", "date_observed", "lte", "date"),
    ),
)

LISTINGS: dict[str, ListingSpec] = {
    "projects": PROJECTS,
    "organisations": ORGANISATIONS,
    "grants": GRANTS,
    "watchdog-issues": WATCHDOG_ISSUES,
}
