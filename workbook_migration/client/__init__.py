"""Client-side migration state machine."""
