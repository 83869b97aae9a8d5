"""Issue-tracker webhook reconciliation service.

Receives tracker webhooks, routes them through a registry of source
processors and reconciles issues and projects into a local record store.
"""
