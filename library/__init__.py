"""Content-library access: slug identifiers and the local content store."""
