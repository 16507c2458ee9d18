"""Pure recurrence logic: pattern generation and exception overlay."""
