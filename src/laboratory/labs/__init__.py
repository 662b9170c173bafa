"""Lab state machine, manifests and env resolution."""
