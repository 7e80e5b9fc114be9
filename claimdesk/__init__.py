"""
Core library for the claimdesk gateway.

    config        UpstreamConfig, load_config
    auth          CredentialStore, ResponseCookieWriter, RefreshCoordinator
    upstream      UpstreamClient, CallOutcome, QueryPlan, planner, ResilientCaller
    aggregation   AggregationEngine, timeline sources and adapters
    catalog       the query variant lists for every operation
"""

__version__ = "0.4.0"
