# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API. These are separate from the
# database model (app/db/models.py): the wire format uses camelCase names
# and never exposes embeddings or content hashes.
# =============================================================================
