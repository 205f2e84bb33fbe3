"""
Lifecycle of the confidential-computation (relayer) client.

One RelayerClient is owned by the process. ensure_initialized() runs the SDK
initialisation once and hands the same in-flight task to every concurrent
caller; get_instance() waits for it and returns the created instance.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config.network_config import RELAYER_CONFIG

logger = logging.getLogger(__name__)


class RelayerClient:
    """
    Owns the relayer SDK instance.

    Args:
        init_sdk: Coroutine function preparing the SDK runtime (called once)
        create_instance: Coroutine function building an instance from a config dict
        config: Relayer network configuration (defaults to RELAYER_CONFIG)
    """

    def __init__(
        self,
        init_sdk: Callable[[], Awaitable[Any]],
        create_instance: Callable[[Dict[str, Any]], Awaitable[Any]],
        config: Optional[Dict[str, Any]] = None,
    ):
        self._init_sdk = init_sdk
        self._create_instance = create_instance
        self.config = dict(config or RELAYER_CONFIG)
        self._init_task: Optional[asyncio.Task] = None
        self._instance: Any = None

    @property
    def is_initialized(self) -> bool:
        return self._instance is not None

    async def _initialize(self) -> Any:
        logger.info("Initializing confidential relayer SDK...")
        await self._init_sdk()
        instance = await self._create_instance(self.config)
        self._instance = instance
        logger.info("Confidential relayer instance ready")
        return instance

    async def ensure_initialized(self) -> Any:
        """Start (or join) initialisation; safe to call from many tasks at once"""
        if self._instance is not None:
            return self._instance

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())

        task = self._init_task
        try:
            return await asyncio.shield(task)
        except Exception:
            # Do not keep a failed initialisation around; the next caller retries
            if self._init_task is task:
                self._init_task = None
            raise

    async def get_instance(self) -> Any:
        return await self.ensure_initialized()
