"""
Scheduler Service - Package Entry Point

Manual and scheduled refreshes (inventory sync followed by compliance
evaluation) across provider accounts.
"""

from app.services.scheduler.orchestrator import RefreshOrchestrator, RefreshScheduler

__all__ = ["RefreshOrchestrator", "RefreshScheduler"]
