"""HTTP API layer (FastAPI).

Exposes the dataset CRUD surface under `/data`:
- POST /data, GET/PUT/DELETE /data/{keyId}
- OPTIONS on any path (CORS preflight)

The API is intentionally thin: conditional-write semantics live in `src/storage`.
"""
