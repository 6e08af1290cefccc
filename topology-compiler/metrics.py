# File: metrics.py

from prometheus_client import Counter, Gauge, Histogram

METRICS = {
    "plans_compiled": Counter("topology_plans_compiled_total", "Total count of successfully compiled plans"),
    "compile_failures": Counter(
        "topology_compile_failures_total",
        "Count of failed compilations",
        ["error"],
    ),
    "compile_latency": Histogram(
        "topology_compile_duration_ms",
        "Time taken to compile a plan in milliseconds",
        buckets=(1, 5, 10, 25, 50, 100, 250, 500),
    ),
    "subnets_allocated": Gauge("topology_subnets_allocated", "Subnets allocated to zones in the last compiled plan"),
    "firewall_rules": Gauge("topology_firewall_rules", "Firewall rules in the last compiled plan"),
    "services": Gauge("topology_services", "Services in the last compiled plan"),
    "plans_stored": Gauge("topology_plans_stored", "Total count of stored plans"),
    "api_requests": Counter(
        "topology_api_requests_total",
        "Total REST API requests",
        ["method", "endpoint"],
    ),
}
