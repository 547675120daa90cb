"""crudforge: schema-driven CRUD generation with manifest-backed rollback."""

__version__ = "0.1.0"
