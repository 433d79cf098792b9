"""Dead reckoning and fix fusion."""
