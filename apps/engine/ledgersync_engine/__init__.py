"""HTTP surface for the LedgerSync engine."""
