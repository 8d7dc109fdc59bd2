"""
Caseflow command-line interface.

Entry point: ``caseflow`` (see ``caseflow.cli.app``).
"""
