"""Reconciliation between the project tree and container workspaces."""
