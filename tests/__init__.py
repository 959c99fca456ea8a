"""Workspace service tests."""
