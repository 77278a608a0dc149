"""Dashboard screens that mutate server state through the coordinator."""
