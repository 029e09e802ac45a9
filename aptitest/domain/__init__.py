"""Domain entities shared across Aptitest components."""
