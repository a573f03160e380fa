"""
contactsync: contact storage with CSV import/export and CRM synchronization.
"""

__version__ = "0.1.0"
