"""Pure helpers shared by the booking engine (no I/O)."""
