"""Governance - policy decisions and the audit trail."""
