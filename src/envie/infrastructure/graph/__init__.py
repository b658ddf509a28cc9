"""Dependency graph engine."""
