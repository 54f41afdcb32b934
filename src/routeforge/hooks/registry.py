"""Hook registries for routeforge.

HookRegistry holds named hook implementations so configuration files can
refer to them by name. HookSet binds hooks to (record type, phase) pairs
for one API.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from routeforge.hooks.types import HookContext, HookResult, Phase

logger = logging.getLogger(__name__)

# Hook function signature: (HookContext) -> HookResult | None, sync or async
HookFn = Callable[[HookContext], Awaitable[HookResult | None] | HookResult | None]


class HookRegistry:
    """Process-wide table of hooks addressable by name.

    api.yaml and ApiOptions.hooks refer to these names; plugins fill the
    table at import time through @hook.
    """

    _named: dict[str, HookFn] = {}

    @classmethod
    def register(cls, name: str, hook_fn: HookFn) -> None:
        """Add hook_fn under name; the first registration of a name wins."""
        cls._named.setdefault(name, hook_fn)

    @classmethod
    def get(cls, name: str) -> HookFn:
        """Look up a hook by name.

        Raises:
            ValueError: No hook has been registered under name
        """
        try:
            return cls._named[name]
        except KeyError:
            raise ValueError(
                f"Hook '{name}' is not registered; import the plugin defining it first"
            ) from None

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._named

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._named)

    @classmethod
    def clear(cls) -> None:
        """Forget every named hook (test isolation)."""
        cls._named.clear()


def hook(name: str) -> Callable[[HookFn], HookFn]:
    """Register the decorated function with HookRegistry under name.

        @hook("blockSpam")
        def block_spam(ctx: HookContext):
            if "casino" in ctx.record.get("title", ""):
                ctx.abort({"name": "Blocked"})
    """

    def register(fn: HookFn) -> HookFn:
        HookRegistry.register(name, fn)
        return fn

    return register


def _phase(phase: Phase | str) -> Phase:
    try:
        return Phase(phase)
    except ValueError:
        raise ValueError(
            f"Unknown hook phase '{phase}'. "
            f"Expected one of: {', '.join(p.value for p in Phase)}"
        ) from None


class HookSet:
    """Hooks bound per (record type, phase).

    Entries are callables or names registered with HookRegistry. Lookups
    read the current binding on every request, so hooks registered or
    replaced after startup apply to subsequent requests.
    """

    def __init__(self, hooks: Mapping[str, Mapping[str, HookFn | str]] | None = None):
        self._hooks: dict[str, dict[Phase, HookFn | str]] = {}
        for record_type, phases in (hooks or {}).items():
            for phase, hook_fn in phases.items():
                self.register(record_type, phase, hook_fn)

    def register(self, record_type: str, phase: Phase | str, hook_fn: HookFn | str) -> None:
        """Bind (or replace) the hook for a record type and phase.

        Raises:
            ValueError: If phase is not a known lifecycle phase
        """
        self._hooks.setdefault(record_type, {})[_phase(phase)] = hook_fn

    def unregister(self, record_type: str, phase: Phase | str) -> None:
        self._hooks.get(record_type, {}).pop(_phase(phase), None)

    def get(self, record_type: str, phase: Phase | str) -> HookFn | None:
        """Current hook for a record type and phase, or None."""
        entry = self._hooks.get(record_type, {}).get(Phase(phase))
        if isinstance(entry, str):
            if not HookRegistry.is_registered(entry):
                logger.warning("Hook '%s' is not registered, skipping", entry)
                return None
            return HookRegistry.get(entry)
        return entry

    def phases(self, record_type: str) -> list[Phase]:
        return list(self._hooks.get(record_type, {}))
