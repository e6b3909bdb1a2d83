"""HTTP interface for the content-library query engine."""
