"""
Bearer-token authentication for API routes.
"""
