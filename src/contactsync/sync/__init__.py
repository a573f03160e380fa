"""
CRM to local bulk synchronization.
"""

from contactsync.sync.orchestrator import BulkSyncOrchestrator

__all__ = ["BulkSyncOrchestrator"]
