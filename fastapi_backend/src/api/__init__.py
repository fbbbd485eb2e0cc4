"""
API package for the users service.

Modules:
- config: environment-driven settings, fail-fast on missing credentials
- db: PostgreSQL connection pooling + query helpers
- schemas: Pydantic models for the REST API
- main: FastAPI app with the /users routes
"""
