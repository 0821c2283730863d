"""
Media catalog synchronization and reconciliation engine.

Components, leaves first:
    identity: IdentityResolver - matches inbound items to canonical records
    merge: merge_items - combines a canonical record with an inbound item
    hierarchy: HierarchyLinker - back-propagates series/season/episode ids
    batch: BatchProcessor - chunked, failure-isolated reconciliation
    orchestrator: SyncOrchestrator - one job run per (user, client, kind)
    scheduler: is_due and SyncScheduler - runs due JobSchedules

Usage:
    orchestrator = SyncOrchestrator(async_session_maker, registry, factory)
    result = await orchestrator.run_sync(user_id=1, client_id=3, media_kind="movies")
"""
