"""
vsmsim package initializer.

This package contains the tick-based simulation engine, time model, routing,
arrival generation and the rolling VSM metrics (lead time, VAT, PCE,
throughput) used to simulate a process graph of stations.
"""
__all__ = [
    "entities", "timemodel", "clock", "scheduler", "network",
    "arrivals", "metrics", "runconfig", "stations", "simulation",
]
