"""Organization reconciliation and validation endpoints."""
