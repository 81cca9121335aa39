"""Acervo Engine — Configuration, error hierarchy, event log and API surface."""
