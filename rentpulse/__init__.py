"""rentpulse - listing event aggregation and metrics."""
