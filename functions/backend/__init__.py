"""
Backend package for the memorial website.

This package provides the memorial store (SQL and in-memory), the asset
store admin client, and a small FastAPI application with the server
functions the wizard relies on: client config, ownership-checked asset
deletion and server-side draft validation.
"""
