"""Service layer: provider gateway, job lifecycle, redaction and caches."""
