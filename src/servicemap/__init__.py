"""Service dependency links inferred from distributed-trace span trees."""
