"""routeforge request hook system.

Hooks intercept a request between its arrival and the store mutation, one
per (record type, phase):
- search: after the query ran, before responding (record is the result list)
- create: with the unsaved record, before insert
- read: with the fetched record, before responding
- update: with the merged record, before it is written
- delete: with the fetched record, before removal

Usage:
    from routeforge.hooks import hook, HookContext, HookResult

    @hook("blockSpam")
    async def block_spam(ctx: HookContext) -> HookResult | None:
        if "viagra" in ctx.record.get("title", ""):
            ctx.abort({"name": "Blocked"})
        return None
"""

from routeforge.hooks.registry import HookFn, HookRegistry, HookSet, hook
from routeforge.hooks.service import HookDispatcher
from routeforge.hooks.types import HookContext, HookResult, Phase, compute_changes

__all__ = [
    "HookContext",
    "HookDispatcher",
    "HookFn",
    "HookRegistry",
    "HookResult",
    "HookSet",
    "Phase",
    "compute_changes",
    "hook",
]
