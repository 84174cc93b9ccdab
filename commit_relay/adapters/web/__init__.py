"""HTTP routes (push webhook, status)."""
