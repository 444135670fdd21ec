"""Device identity and per-device reassembly state."""
