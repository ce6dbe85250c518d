"""TCP/UDP server that evaluates expression and roster requests using worker processes."""
from multiprocessing import Pipe, Process, cpu_count
from multiprocessing.connection import Connection
from pathlib import Path
import socket
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress

from arithmetic_gpa_server.common.logger import logger
from arithmetic_gpa_server.common.operations import Operation
from arithmetic_gpa_server.common.protocol import encode_reply
from arithmetic_gpa_server.server.socket_handler import Transport, create_socket
from arithmetic_gpa_server.server.worker import WorkerProcess, process_request

# Largest UDP payload, so a datagram is never truncated on receipt
MAX_DATAGRAM_SIZE: int = 65535


class ArithmeticServer(BaseModel):
    """
    Socket server answering arithmetic and roster requests.

    Features:
        - TCP: spawns one worker process per request line of a connection.
        - TCP: replies are sent back in request order once all workers finished.
        - UDP: each datagram is one request, answered to its sender.
        - Handles multiple simultaneous workers up to CPU core count.
        - Stops after answering a Terminate request.
    """

    # Allow arbitrary types like multiprocessing.Connection
    model_config = ConfigDict(arbitrary_types_allowed=True)

    host: IPvAnyAddress = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=9000, ge=1, le=65535, description="Server port")
    transport: Transport = Field(default="tcp", description="Transport protocol, 'tcp' or 'udp'")
    output_file: Optional[Path] = Field(default=None, description="Optional path where every reply is logged")

    def _receive_data(self, conn: socket.socket) -> List[bytes]:
        """
        Receive all data from the client connection and return non-empty request lines.

        :param socket.socket conn: Connected client socket

        :return: List of non-empty request lines
        :rtype: List[bytes]
        """
        # Note: chunks are small pieces of data read from a TCP stream, as data may arrive in multiple packets
        chunks: List[bytes] = []
        while True:
            chunk: bytes = conn.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
        data: List[bytes] = b"".join(chunks).splitlines()
        # Remove empty lines
        return [line.strip() for line in data if line.strip()]

    def _spawn_worker(self, request: bytes, line_number: int) -> Tuple[Process, Connection]:
        """
        Spawn a WorkerProcess for the given request line and return process and pipe.

        :param bytes request: Request line
        :param int line_number: Position of the request in the connection

        :return: Tuple of (Process, parent_pipe)
        :rtype: Tuple[Process, Connection]
        """
        parent_conn, child_conn = Pipe()
        worker = WorkerProcess(conn=child_conn, request=request, line_number=line_number)
        process = Process(target=worker.run)
        process.start()
        return process, parent_conn

    def _collect_finished_workers(
        self, active_workers: List[Tuple[Process, Connection]], payloads: Dict[int, dict]
    ) -> None:
        """
        Collect payloads from all finished workers, keyed by line number.

        Finished workers are removed from the active_workers list.

        :param list active_workers: List of tuples (Process, Pipe)
        :param dict payloads: Collected payloads, updated in place
        """
        # Iterate in reverse to safely remove finished workers while iterating
        for i in reversed(range(len(active_workers))):
            proc, pipe_conn = active_workers[i]
            if not proc.is_alive():
                payload = pipe_conn.recv()
                pipe_conn.close()
                proc.join()
                active_workers.pop(i)
                payloads[payload["line"]] = payload

    def _record(self, request: bytes, reply: bytes) -> None:
        """Append a request/reply pair to the output file, if one is configured."""
        if self.output_file is None:
            return
        with self.output_file.open("a", encoding="utf-8") as f_out:
            f_out.write(f"{request.decode(errors='replace')} -> {reply.decode()}\n")

    def handle_connection(self, conn: socket.socket) -> bool:
        """
        Evaluate every request line of a connection and send the replies back in order.

        :param socket.socket conn: Connected client socket

        :return: True if the client asked the server to terminate
        :rtype: bool
        """
        data: List[bytes] = self._receive_data(conn)

        # Limit number of active workers to CPU cores or number of requests
        max_workers: int = min(cpu_count(), len(data))
        active_workers: List[Tuple[Process, Connection]] = []
        payloads: Dict[int, dict] = {}

        for line_number, request in enumerate(data, start=1):
            # Wait until a worker slot is available
            while len(active_workers) >= max_workers:
                self._collect_finished_workers(active_workers, payloads)

            active_workers.append(self._spawn_worker(request, line_number))

        # Collect remaining active workers
        while active_workers:
            self._collect_finished_workers(active_workers, payloads)

        replies: List[bytes] = []
        terminate = False
        for line_number in sorted(payloads):
            payload = payloads[line_number]
            self._record(payload["request"], payload["reply"])
            replies.append(payload["reply"] + b"\n")
            terminate = terminate or payload["kind"] == Operation.TERMINATE

        try:
            conn.sendall(b"".join(replies))
            logger.info(f"✉️ {len(replies)} replies sent to client")
        except OSError as exc:
            logger.error(f"🔌❌ Client disconnected before receiving replies: {exc}")

        return terminate

    def handle_datagram(self, datagram: bytes) -> Tuple[bytes, bool]:
        """
        Evaluate a single datagram request.

        :param bytes datagram: Received datagram

        :return: Tuple of (reply, terminate requested)
        :rtype: Tuple[bytes, bool]
        """
        request = datagram.strip()
        kind, result = process_request(request)
        reply = encode_reply(result)
        self._record(request, reply)
        return reply, kind is Operation.TERMINATE

    def _serve_tcp(self, sock: socket.socket) -> None:
        while True:
            conn, address = sock.accept()
            logger.info(f"🤝 Connection from {address}")
            with conn:
                if self.handle_connection(conn):
                    logger.info("🛑 Terminate request received")
                    return

    def _serve_udp(self, sock: socket.socket) -> None:
        while True:
            datagram, address = sock.recvfrom(MAX_DATAGRAM_SIZE)
            reply, terminate = self.handle_datagram(datagram)
            try:
                sock.sendto(reply, address)
            except OSError as exc:
                logger.error(f"🔌❌ Could not reply to {address}: {exc}")
            if terminate:
                logger.info("🛑 Terminate request received")
                return

    def start(self) -> None:
        """
        Start the server and answer requests until a Terminate request arrives.

        Steps:
            1. Bind (and for TCP, listen) on the specified host and port.
            2. TCP: accept connections one after the other, evaluating each
               connection's requests in worker processes.
            3. UDP: answer each datagram as it arrives.
            4. Return once a Terminate request has been answered.

        :return: None
        """
        logger.info(f"🖥️ Starting {self.transport.upper()} server on {self.host}:{self.port}")

        with create_socket(self.port, self.transport, str(self.host)) as sock:
            logger.info("🖥️ Server listening")
            if self.transport == "tcp":
                self._serve_tcp(sock)
            else:
                self._serve_udp(sock)

        logger.info("🖥️ Server stopped")
