"""HTTP management surface of the rules engine (rules CRUD + alert reads)."""
