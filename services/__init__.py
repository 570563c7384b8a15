"""Reconciliation services: pagination/retry helpers, catalog, order and tracking sync."""
