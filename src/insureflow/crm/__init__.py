"""CRM core -- policy/client/product model, sheet row codec, and sync orchestration.

Provides the Pydantic schemas (Policy, Client, Product, ConnectionConfig),
the row codec for the 12-column Policies sheet, client reconciliation,
the persisted connection config store, the three-step ConnectionWizard,
and CRMCoordinator which owns the live collections.
"""
