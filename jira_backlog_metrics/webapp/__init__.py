"""JSON web API for Jira Backlog Metrics."""
