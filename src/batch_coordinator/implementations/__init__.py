"""Store, lock and trigger implementations behind the coordinator."""
