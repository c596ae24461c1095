"""Portfolio analytics and signal engine."""
