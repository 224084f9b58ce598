"""Ownership and readiness of the shared model handle."""
import asyncio
import logging
import threading
from typing import Callable, Optional

from src.backend.errors import ModelLoadFailed, ModelNotReady
from src.backend.models import ModelHandle

logger = logging.getLogger(__name__)


class ModelManager:
    """Loads the model once in the background and hands it out afterwards.

    The manager is the only writer of the handle. The handle is assigned
    before the ready event is set, so any reader that sees ``is_ready()``
    also sees a fully built handle. A failed load is final: the manager
    stays non-ready until the process is restarted.

    Example:
        >>> manager = ModelManager(lambda: load_model(MODEL_SOURCE))
        >>> manager.start_load()       # inside the running event loop
        >>> manager.is_ready()
        False
    """

    def __init__(self, loader: Callable[[], ModelHandle]):
        self._loader = loader
        self._handle: Optional[ModelHandle] = None
        self._error: Optional[BaseException] = None
        self._ready = threading.Event()
        self._settled = threading.Event()
        self._task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def status(self) -> str:
        if self._ready.is_set():
            return "ready"
        if self._settled.is_set():
            return "failed"
        if self._started:
            return "loading"
        return "idle"

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def start_load(self) -> None:
        """Schedule the load on a worker thread without blocking the caller.

        Must be called from inside a running event loop. Calling it again
        after the first time does nothing.
        """
        if self._started:
            return
        self._started = True
        logger.info("Starting background model load")
        self._task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._load))

    def load_sync(self) -> None:
        """Run the load on the calling thread."""
        if self._started:
            return
        self._started = True
        self._load()

    def _load(self) -> None:
        try:
            handle = self._loader()
        except Exception as e:
            logger.error(f"Failed to load the model: {e}", exc_info=True)
            self._error = e
        else:
            self._handle = handle
            self._ready.set()
            logger.info(f"Model loaded successfully (input size {handle.input_size}, device {handle.device})")
        finally:
            self._settled.set()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def get(self) -> ModelHandle:
        """Return the loaded handle.

        Raises:
            ModelLoadFailed: If the load finished with an error
            ModelNotReady: If the load has not finished yet
        """
        if self._ready.is_set():
            return self._handle
        if self._settled.is_set():
            raise ModelLoadFailed(reason=f"model load failed: {self._error}")
        raise ModelNotReady(reason=f"model is {self.status}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the load has finished, successfully or not.

        Returns:
            True if the load settled within the timeout
        """
        return self._settled.wait(timeout)

    async def stop(self) -> None:
        """Cancel a load that is still pending at shutdown."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
