"""
faultline: Composable chaos stages for HTTP request pipelines.

Decorates a request handler with synthetic faults (error statuses, truncated
bodies, latency, thrown faults) driven by a runtime-reconfigurable stage
state machine.
"""

__version__ = "0.1.0"
