"""
Metrics tracking for observability.

Simple in-memory counters for CPR operations and SQL execution.
"""
import logging

log = logging.getLogger("cpr")


class Metrics:
    """Simple metrics tracker for observability."""

    def __init__(self):
        self.operation_count = 0
        self.sql_query_count = 0
        self.error_count = 0
        self.vintage_miss_count = 0
        self.total_sql_time = 0.0

    def log_operation(self, name: str):
        """Log the start of a public operation."""
        self.operation_count += 1
        log.info(f"📊 Metrics: operations={self.operation_count} ({name})")

    def log_sql_query(self, duration: float):
        """Log a SQL query with its duration."""
        self.sql_query_count += 1
        self.total_sql_time += duration

    def log_vintage_miss(self):
        self.vintage_miss_count += 1

    def log_error(self):
        """Log an error occurrence."""
        self.error_count += 1

    def get_stats(self) -> dict:
        """
        Get current metrics statistics.

        Returns:
            Dictionary with all metrics
        """
        return {
            "operations": self.operation_count,
            "sql_queries": self.sql_query_count,
            "errors": self.error_count,
            "vintage_misses": self.vintage_miss_count,
            "avg_sql_time": self.total_sql_time / max(1, self.sql_query_count),
        }


metrics = Metrics()
