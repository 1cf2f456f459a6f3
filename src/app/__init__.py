"""Application lifecycle: bootstrap and shared state."""
