from prometheus_client import Counter


scheduling_runs_total = Counter(
    "medication_scheduling_runs_total",
    "Total per-medication scheduling runs",
)

scheduling_runs_aborted_total = Counter(
    "medication_scheduling_runs_aborted_total",
    "Scheduling runs that stopped early (missing medication or schedules)",
    ["reason"],
)

scheduling_runs_superseded_total = Counter(
    "medication_scheduling_runs_superseded_total",
    "Queued scheduling runs replaced by a newer run for the same medication",
)

reminders_inserted_total = Counter(
    "medication_reminders_inserted_total",
    "Reminders persisted and armed by reconciliation",
)

reminders_deleted_total = Counter(
    "medication_reminders_deleted_total",
    "Stale reminders cancelled and removed by reconciliation",
)

malformed_rows_total = Counter(
    "medication_scheduling_malformed_rows_total",
    "Stored rows skipped because they could not be parsed",
    ["table"],
)
