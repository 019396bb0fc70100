"""
queuectl

A durable, single-node background job queue for shell commands with
atomic claims, exponential-backoff retries and a dead letter queue.
"""

__version__ = "1.0.0"
