"""
Operational metrics for the budget governor.

Prometheus series describing guard decisions, enforcement actions and the
health of the billing/metrics backends the governor depends on.
"""

from prometheus_client import Counter, Gauge

# --- Budget State ---
BUDGET_PERCENT_USED = Gauge(
    "kaiju_budget_percent_used",
    "Percentage of the monthly budget consumed at the last evaluation",
)

BUDGET_REMAINING_USD = Gauge(
    "kaiju_budget_remaining_usd",
    "Remaining monthly budget in USD at the last evaluation",
)

BUDGET_STATUS_EVALUATIONS_TOTAL = Counter(
    "kaiju_budget_status_evaluations_total",
    "Budget status evaluations by resulting status",
    ["status"],
)

BUDGET_SPEND_SOURCE_TOTAL = Counter(
    "kaiju_budget_spend_source_total",
    "Which source produced the current-period spend figure",
    ["source"],  # cost_explorer, cloudwatch_estimate, unavailable
)

# --- Decisions ---
BUDGET_GUARD_DECISIONS_TOTAL = Counter(
    "kaiju_budget_guard_decisions_total",
    "Request-time budget guard decisions",
    ["decision", "reason"],
)

BUDGET_ENFORCEMENT_ACTIONS_TOTAL = Counter(
    "kaiju_budget_enforcement_actions_total",
    "Enforcement engine outcomes",
    ["action"],
)

# --- Side Effects ---
BUDGET_GATEWAY_FAILURES_TOTAL = Counter(
    "kaiju_budget_gateway_failures_total",
    "Alerting/metrics gateway operations that failed and were swallowed",
    ["operation"],
)

BUDGET_ALERTS_SENT_TOTAL = Counter(
    "kaiju_budget_alerts_sent_total",
    "Budget alert notifications published",
    ["severity"],
)
