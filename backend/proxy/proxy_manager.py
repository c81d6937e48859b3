import asyncio
import logging
import queue
import threading

from config import PROXY_HOST, PROXY_PORT, PROXY_QUEUE_MAX

log = logging.getLogger(__name__)


class ProxyManager:
    """Owns the capturing mitmproxy instance and its private event loop.

    mitmproxy runs on a daemon thread; the only thing shared with the
    backend loop is ``log_queue``, emptied through :meth:`drain`.
    """

    def __init__(self, listen_host: str = PROXY_HOST, listen_port: int = PROXY_PORT) -> None:
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.log_queue: queue.Queue = queue.Queue(maxsize=PROXY_QUEUE_MAX)
        self.master = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._thread_main, name="mitmproxy", daemon=True)
        self._thread.start()
        log.info("capture proxy starting on %s:%s", self.listen_host, self.listen_port)

    def drain(self, limit: int = 500) -> list[dict]:
        """Pop up to *limit* captured entries without blocking."""
        entries: list[dict] = []
        while len(entries) < limit:
            try:
                entries.append(self.log_queue.get_nowait())
            except queue.Empty:
                break
        return entries

    def stop(self, timeout: float = 5.0) -> None:
        """Ask mitmproxy to shut down and wait briefly for the thread."""
        loop, master = self._loop, self.master
        if master is not None and loop is not None and loop.is_running():
            loop.call_soon_threadsafe(master.shutdown)
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                log.warning("capture proxy did not stop within %.1fs", timeout)

    def _thread_main(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._serve())
        except Exception:
            log.exception("capture proxy crashed")
        finally:
            self._loop.close()
            self._loop = None
            self.master = None

    async def _serve(self) -> None:
        # DumpMaster wants a running loop, so it is built on this thread
        from mitmproxy import options
        from mitmproxy.tools.dump import DumpMaster

        from proxy.mitm_addon import CaptureAddon

        opts = options.Options(
            listen_host=self.listen_host,
            listen_port=self.listen_port,
            ssl_insecure=True,
        )
        self.master = DumpMaster(opts, with_dumper=False)
        self.master.addons.add(CaptureAddon(self.log_queue))
        await self.master.run()
        log.info("capture proxy stopped")
