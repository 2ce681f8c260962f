"""HTTP surface for the Omega Codex conversation."""
