"""Task orchestration: registry, admission gate, executors and the run loop.

Tasks run strictly one after another inside an invocation. The daily limit
and the circuit breaker both depend on counters written by the task that ran
just before, so there is no worker pool here.
"""
