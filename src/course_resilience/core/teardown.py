"""
Process Teardown Hooks

Components with buffered state (the analytics batcher) register a hook that
runs once when the process shuts down. Registration is keyed by name, so a
module re-imported by a hot reload cannot register a second copy.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from course_resilience.core.config.constants import Stage
from course_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)

TeardownHook = Callable[[], Awaitable[Any]]


class TeardownRegistry:
    """Name-keyed, run-once shutdown hooks."""

    def __init__(self):
        self._hooks: dict[str, TeardownHook] = {}

    def register(self, name: str, hook: TeardownHook) -> bool:
        """
        Register ``hook`` under ``name``.

        Returns:
            False (and keeps the existing hook) when the name is taken
        """
        if name in self._hooks:
            logger.debug("Teardown hook already registered", hook=name)
            return False
        self._hooks[name] = hook
        logger.debug("Teardown hook registered", hook=name)
        return True

    def is_registered(self, name: str) -> bool:
        return name in self._hooks

    async def run_all(self) -> None:
        """
        Run and drop every hook in registration order.

        Hooks are best-effort: a failing hook is logged and the rest still run.
        """
        while self._hooks:
            name = next(iter(self._hooks))
            hook = self._hooks.pop(name)
            try:
                await hook()
                logger.info("Teardown hook completed", stage=Stage.SHUTDOWN.value, hook=name)
            except Exception as e:
                logger.error(
                    "Teardown hook failed",
                    stage=Stage.SHUTDOWN.value,
                    hook=name,
                    error=str(e),
                    exc_info=True,
                )

    def clear(self) -> None:
        self._hooks.clear()

    def __len__(self) -> int:
        return len(self._hooks)


# Global instance
_registry: TeardownRegistry | None = None


def get_teardown_registry() -> TeardownRegistry:
    global _registry
    if _registry is None:
        _registry = TeardownRegistry()
    return _registry
