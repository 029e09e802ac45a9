"""Assessment components."""
