"""SQLite schema of the fact store.

Requirements and traces carry a generation stamp used by reconciliation.
Test runs, tests, coverage and reviews are historical data and carry none.
Unrelated* tables hold facts whose referent was not known at ingestion.
"""

from __future__ import annotations

SCHEMA_VERSION = 1

SCHEMA_DDL = """
create table if not exists Requirements (
    id text not null primary key,
    generation integer not null,
    introduced integer not null,
    origin text not null,
    title text not null default '',
    annotation text check (annotation in ('manual', 'deprecated'))
);

create table if not exists RequirementHierarchies (
    child_id text not null references Requirements(id) on delete cascade,
    parent_id text not null references Requirements(id) on delete cascade,
    primary key (child_id, parent_id)
);

create table if not exists Traces (
    req_id text not null references Requirements(id) on delete cascade,
    generation integer not null,
    introduced integer not null,
    filepath text not null,
    line integer not null,
    item_name text,
    primary key (req_id, filepath, line)
);

create table if not exists TraceSpans (
    req_id text not null,
    filepath text not null,
    line integer not null,
    span_start integer not null,
    span_end integer not null,
    primary key (req_id, filepath, line),
    foreign key (req_id, filepath, line)
        references Traces(req_id, filepath, line) on delete cascade
);

create table if not exists UnrelatedTraces (
    req_id text not null,
    generation integer not null,
    filepath text not null,
    line integer not null,
    item_name text,
    span_start integer,
    span_end integer,
    primary key (req_id, filepath, line)
);

create table if not exists TestRuns (
    name text not null,
    date text not null,
    nr_of_tests integer not null,
    meta text,
    logs text,
    primary key (name, date)
);

create table if not exists Tests (
    test_run_name text not null,
    test_run_date text not null,
    name text not null,
    filepath text not null,
    line integer not null,
    outcome text not null
        check (outcome in ('passed', 'failed', 'skipped', 'pending')),
    skip_reason text,
    primary key (test_run_name, test_run_date, name),
    foreign key (test_run_name, test_run_date)
        references TestRuns(name, date) on delete cascade
);

create table if not exists TestCoverage (
    req_id text not null references Requirements(id) on delete cascade,
    test_run_name text not null,
    test_run_date text not null,
    test_name text not null,
    trace_filepath text not null,
    trace_line integer not null,
    primary key (req_id, test_run_name, test_run_date, test_name, trace_filepath, trace_line),
    foreign key (test_run_name, test_run_date, test_name)
        references Tests(test_run_name, test_run_date, name) on delete cascade,
    foreign key (req_id, trace_filepath, trace_line)
        references Traces(req_id, filepath, line) on delete cascade
);

create table if not exists UnrelatedTestCoverage (
    req_id text not null,
    test_run_name text not null,
    test_run_date text not null,
    test_name text not null,
    trace_filepath text not null,
    trace_line integer not null,
    primary key (req_id, test_run_name, test_run_date, test_name, trace_filepath, trace_line),
    foreign key (test_run_name, test_run_date, test_name)
        references Tests(test_run_name, test_run_date, name) on delete cascade
);

create table if not exists Reviews (
    name text not null,
    date text not null,
    reviewer text not null,
    comment text,
    primary key (name, date)
);

create table if not exists ManuallyVerified (
    req_id text not null references Requirements(id) on delete cascade,
    review_name text not null,
    review_date text not null,
    comment text,
    primary key (req_id, review_name, review_date),
    foreign key (review_name, review_date)
        references Reviews(name, date) on delete cascade
);

create table if not exists UnrelatedManuallyVerified (
    req_id text not null,
    review_name text not null,
    review_date text not null,
    comment text,
    primary key (req_id, review_name, review_date),
    foreign key (review_name, review_date)
        references Reviews(name, date) on delete cascade
);

create table if not exists IngestionBatches (
    generation integer not null primary key,
    scope text not null check (scope in ('requirements', 'traces', 'all')),
    started text not null
);

create table if not exists SchemaInfo (
    key text not null primary key,
    value text not null
);
"""

# Deletion order for clear(): dependents before referents.
ALL_TABLES = (
    "UnrelatedManuallyVerified",
    "ManuallyVerified",
    "Reviews",
    "UnrelatedTestCoverage",
    "TestCoverage",
    "Tests",
    "TestRuns",
    "UnrelatedTraces",
    "TraceSpans",
    "Traces",
    "RequirementHierarchies",
    "Requirements",
    "IngestionBatches",
)


def iter_statements(ddl: str = SCHEMA_DDL):
    """Split the DDL script into individual statements."""
    for stmt in ddl.split(";"):
        stmt = stmt.strip()
        if stmt:
            yield stmt
