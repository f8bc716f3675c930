"""
Villa Onboarding - Core Logic

Two halves of the onboarding progress system:
1. core.progress: server-side records, versioned step updates, consistency audit
2. core.onboarding: client-side autosave engine (store, scheduler, client,
   conflict reconciliation, local backup)
"""
