"""Hook dispatch for routeforge.

Invokes the hook bound to a request's record type and phase. A missing
hook is a no-op; a hook that raises AbortError short-circuits the request
with its payload; any other exception is logged and converted to an abort.
"""

import inspect
import logging

from routeforge.errors import AbortError
from routeforge.hooks.registry import HookSet
from routeforge.hooks.types import HookContext, HookResult

logger = logging.getLogger(__name__)


class HookDispatcher:
    """Runs per-request hooks for one API."""

    def __init__(self, hooks: HookSet):
        self.hooks = hooks

    async def dispatch(self, context: HookContext) -> HookResult | None:
        """Run the hook bound to context.record_type / context.phase.

        Returns:
            None when no hook is bound or the hook returned nothing,
            otherwise its HookResult. Updates are merged into
            context.record before returning.
        """
        hook_fn = self.hooks.get(context.record_type, context.phase)
        if hook_fn is None:
            return None

        try:
            result = hook_fn(context)
            if inspect.isawaitable(result):
                result = await result
        except AbortError as e:
            return HookResult(abort=e.payload)
        except Exception as e:
            logger.error(
                "%s hook for '%s' failed: %s",
                context.phase.value,
                context.record_type,
                e,
                exc_info=True,
            )
            return HookResult(abort={"name": type(e).__name__, "message": str(e)})

        if result is None:
            return None

        if result.update and not result.aborted and isinstance(context.record, dict):
            context.record.update(result.update)

        return result
