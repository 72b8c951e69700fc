"""XP rules, the progression ledger, achievements and the client read model."""
