import logging
import socketserver
import threading

from .dispatcher import QueryDispatcher

logger = logging.getLogger("buoy.server")


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles UDP DNS requests.
    This class is instantiated for each incoming DNS query, on its own thread.

    The shared QueryDispatcher is read from the owning server, so several
    servers with different caches can coexist in one process.
    """

    def handle(self) -> None:
        data, sock = self.request
        dispatcher = self.server.dispatcher
        logger.debug("Received %d bytes from %s", len(data), self.client_address[0])

        wire = dispatcher.handle_query_bytes(data)
        if not wire:
            return
        sock.sendto(wire, self.client_address)


class _DispatchingUDPServer(socketserver.ThreadingUDPServer):
    """ThreadingUDPServer carrying the dispatcher its handlers share.

    Handler threads are non-daemon and server_close() joins them, so a stop
    lets queries that are already being answered finish.
    """

    daemon_threads = False
    block_on_close = True
    allow_reuse_address = True

    def __init__(self, server_address, dispatcher: QueryDispatcher) -> None:
        self.dispatcher = dispatcher
        super().__init__(server_address, DNSUDPHandler)

    def server_close(self) -> None:
        # Handlers reply on the listening socket, so join them before closing it.
        if self.block_on_close:
            self._threads.join()
        socketserver.UDPServer.server_close(self)

    def handle_error(self, request, client_address) -> None:
        logger.exception("Unhandled error while serving %s", client_address)


class DNSServer:
    """A UDP DNS server wrapper.

    Example use:
        >>> from buoy.servers.udp_server import DNSServer
        >>> import threading
        >>> server = DNSServer("127.0.0.1", 0, dispatcher)  # doctest: +SKIP
        >>> t = threading.Thread(target=server.serve_forever, daemon=True)  # doctest: +SKIP
        >>> t.start()  # doctest: +SKIP
        >>> server.stop()  # doctest: +SKIP
    """

    def __init__(self, host: str, port: int, dispatcher: QueryDispatcher) -> None:
        """Initialize and bind a UDP DNSServer.

        Inputs:
            host: The host to listen on.
            port: The port to listen on (0 picks a free port).
            dispatcher: QueryDispatcher shared by every handler thread.
        """
        self.dispatcher = dispatcher
        self._state_lock = threading.Lock()
        self._serving = threading.Event()
        self._stopped = threading.Event()
        try:
            self.server = _DispatchingUDPServer((host, port), dispatcher)
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise

        logger.debug("DNS UDP server bound to %s:%d", *self.server_address[:2])

    @property
    def server_address(self):
        return self.server.server_address

    def serve_forever(self) -> None:
        """Start the UDP server loop and listen for requests.

        Inputs:
          - None
        Outputs:
          - None; runs until stop() is called or KeyboardInterrupt occurs.
        """
        with self._state_lock:
            if self._stopped.is_set():
                return
            self._serving.set()
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            pass

    def stop(self) -> None:
        """Request graceful shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None. New datagrams are no longer accepted; handler threads that
            are already running are waited for.
        """
        with self._state_lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
            serving = self._serving.is_set()
        if serving:
            try:
                # First ask the ThreadingUDPServer loop to stop accepting requests.
                self.server.shutdown()
            except Exception:
                logger.exception("Error while shutting down UDP server")
        try:
            # Then let in-flight handlers reply and close the socket.
            self.server.server_close()
        except Exception:
            logger.exception("Error while closing UDP server socket")
