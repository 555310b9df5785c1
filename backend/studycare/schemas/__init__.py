"""
StudyCare Backend — API Schemas
=================================

Pydantic request bodies and explicit result models, one module per feature.
Every route responds with `ApiResponse[<result model>]`.
"""
