"""Reconciliation domain: models, paging, classification and assembly."""
