"""Jira Backlog Metrics - backlog flow analytics extracted from JIRA changelogs.

This package fetches issues with their change history, derives priority-level
incoming/outgoing events for the active backlog, aggregates tickets into
daily/weekly/monthly series and keeps a merged JSON snapshot on disk.
"""
