"""TCP/UDP client."""
from pathlib import Path
import socket
import tarfile
import tempfile
from typing import List
import zipfile

import py7zr
from pydantic import BaseModel, ConfigDict, Field, FilePath, IPvAnyAddress

from arithmetic_gpa_server.common.logger import logger
from arithmetic_gpa_server.common.operations import OperationRequest, OperationResult
from arithmetic_gpa_server.common.protocol import decode_request, encode_request, parse_reply
from arithmetic_gpa_server.server.socket_handler import Transport

# Largest reply datagram expected in UDP mode
MAX_DATAGRAM_SIZE: int = 4096


def _first_text_member(names: List[str], archive_kind: str) -> str:
    """Return the first .txt member of an archive listing."""
    for name in names:
        if name.endswith(".txt"):
            return name
    raise ValueError(f"📄❌ No .txt file found in {archive_kind} archive")


class ArithmeticClient(BaseModel):
    """
    Client sending expression and roster requests to the server and receiving the replies.

    The client:
    - loads request lines from a plain text file or an archive and validates each one
    - sends them as one TCP batch, or one UDP datagram per request
    - parses the replies back into results
    - writes one line per request and result into an output file
    """

    # Make the Pydantic instance immutable (read-only), to prevent errors
    # that could be caused by changes to the network configuration during execution.
    model_config = ConfigDict(frozen=True)

    host: IPvAnyAddress = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=9000, ge=1, le=65535, description="Server port")
    transport: Transport = Field(default="tcp", description="Transport protocol, 'tcp' or 'udp'")
    timeout: float = Field(default=5.0, gt=0, description="Seconds to wait for a UDP reply")

    def load_requests(self, input_file: FilePath) -> List[OperationRequest]:
        """
        Read and decode every non-blank request line of a text file or archive.

        :param FilePath input_file: Path to the input file or archive

        :return: Decoded requests, in file order
        :rtype: List[OperationRequest]
        :raises ValueError: If a line is not a valid request, or the archive is unusable
        """
        if input_file.suffix == ".txt":
            content = input_file.read_text()
        else:
            content = self._read_archive(input_file)

        requests: List[OperationRequest] = []
        for line_number, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                requests.append(decode_request(line.strip().encode()))
            except ValueError as exc:
                raise ValueError(f"📄❌ Invalid request on line {line_number} of {input_file}: {exc}") from exc
        return requests

    def send_requests(self, requests: List[OperationRequest]) -> List[OperationResult]:
        """
        Send requests as a single TCP batch and parse the replies.

        :param list requests: Requests to send

        :return: One result per request, in request order
        :rtype: List[OperationResult]
        :raises ValueError: If the server does not answer every request
        """
        payload = b"".join(encode_request(request) + b"\n" for request in requests)

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.connect((str(self.host), self.port))
            s.sendall(payload)
            # Signal that no more requests will be sent
            s.shutdown(socket.SHUT_WR)

            # recv() returns b"" once the server has sent every reply and closed
            chunks: List[bytes] = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)

        results = [parse_reply(line) for line in b"".join(chunks).splitlines() if line.strip()]
        if len(results) != len(requests):
            raise ValueError(f"🔌❌ Expected {len(requests)} replies, received {len(results)}")
        return results

    def send_datagram(self, request: OperationRequest) -> OperationResult:
        """
        Send a single request as a UDP datagram and wait for its reply.

        :param OperationRequest request: Request to send

        :return: Result replied by the server
        :rtype: OperationResult
        :raises socket.timeout: If no reply arrives within the timeout
        :raises ValueError: If the reply is malformed
        """
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.settimeout(self.timeout)
            s.sendto(encode_request(request), (str(self.host), self.port))
            reply, _ = s.recvfrom(MAX_DATAGRAM_SIZE)
        return parse_reply(reply)

    def send_file(self, input_file: FilePath, output_file: Path) -> List[OperationResult]:
        """
        Send every request of an input file and write each request with its result.

        Output lines read ``<request> = <result>`` on success and
        ``<request> -> ERROR: <status>`` on failure.

        :param FilePath input_file: Path to the input file or archive
        :param Path output_file: Path where results will be written

        :return: One result per request
        :rtype: List[OperationResult]
        """
        requests = self.load_requests(input_file)

        if self.transport == "tcp":
            results = self.send_requests(requests)
        else:
            results = [self.send_datagram(request) for request in requests]

        with output_file.open("w", encoding="utf-8") as f_out:
            for request, result in zip(requests, results):
                line = encode_request(request).decode(errors="replace")
                if result.is_ok:
                    f_out.write(f"{line} = {result.result}\n")
                else:
                    f_out.write(f"{line} -> ERROR: {result.status.name}\n")

        failures = sum(not result.is_ok for result in results)
        logger.info(f"📨 {len(results)} results written to {output_file} ({failures} failed)")
        return results

    def _read_archive(self, archive_path: FilePath) -> str:
        """
        Return the content of the first .txt member of a .zip, .tar.xz or .7z archive.

        :param FilePath archive_path: Path to the archive file

        :return: Text of the first .txt member
        :rtype: str
        :raises ValueError: If no .txt member is found or the format is unsupported
        """
        if archive_path.suffix == ".zip":
            with zipfile.ZipFile(archive_path, "r") as zf:
                return zf.read(_first_text_member(zf.namelist(), "zip")).decode()

        if archive_path.suffixes[-2:] == [".tar", ".xz"]:
            with tarfile.open(archive_path, "r:xz") as tf:
                members = [m.name for m in tf.getmembers() if m.isfile()]
                member = tf.extractfile(_first_text_member(members, "tar.xz"))
                return member.read().decode()

        if archive_path.suffix == ".7z":
            # py7zr only extracts to disk
            with py7zr.SevenZipFile(archive_path, mode="r") as archive, tempfile.TemporaryDirectory() as tmpdir:
                name = _first_text_member(archive.getnames(), "7z")
                archive.extract(path=tmpdir, targets=[name])
                return (Path(tmpdir) / name).read_text()

        raise ValueError(f"📄❌ Unsupported archive format: {archive_path.suffix}")
