"""Domain layer - WAL naming, recovery targets and the backup catalog."""
