"""
Catalog ingestion pipeline stages.

Stages are imported from their modules directly (e.g.
`trek_catalog.ingestion.incremental_merge`); this package does not re-export them
so that `trek_catalog.settings` can import the error taxonomy without pulling in
the whole pipeline.
"""
