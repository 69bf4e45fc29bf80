"""Workflow model, job-graph builder and lock-file compiler."""
