"""
Contact storage, CSV import/export and the contact HTTP API.
"""
