"""Domain services: access gate, stage state store, stage engines, activity tracking."""
