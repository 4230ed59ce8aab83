from prometheus_client import Counter

TRANSITIONS = Counter(
    "review_transitions_total",
    "Successful workflow mutations",
    ["entity_type", "action"],
)

ERRORS = Counter(
    "review_errors_total",
    "Workflow errors surfaced to callers",
    ["code"],
)
