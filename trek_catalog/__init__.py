"""
Star Trek catalog generation library.

This package holds the pipeline stages reused by the entrypoints in `scripts/`:
- provider clients under `integrations/`
- pipeline stages under `ingestion/`
- catalog persistence under `repositories/`

CLI scripts should import from `trek_catalog` rather than the other way around.
"""
