"""
Caseflow - execution control for case-management background work.

Subpackages:
- caseflow.core: errors, logging, settings, storage primitives
- caseflow.execution: job runner, retry policy, stale-job reclamation
- caseflow.billing: credit ledger, usage log, quota engine
- caseflow.alerts: throttled alert dispatch and failure-spike detection
"""

__version__ = "0.1.0"
