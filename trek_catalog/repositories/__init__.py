"""
Persistence for the generated catalog (a JSON array of era objects).
"""

from trek_catalog.repositories.catalog_file import (
    CatalogSchemaError,
    catalog_exists,
    load_catalog,
    write_catalog,
)

__all__ = [
    "CatalogSchemaError",
    "catalog_exists",
    "load_catalog",
    "write_catalog",
]
