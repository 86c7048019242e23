"""Pure domain layer: value types, clock, balance rules. Zero I/O."""
