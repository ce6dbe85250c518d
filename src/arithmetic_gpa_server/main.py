"""
Command-line entrypoint used by CI and Docker.

Sub-commands:
- ``serve``: run the server until a Terminate request arrives
- ``send``: send a request file to a running server
- ``run``: start a server process, send a request file to it, stop the server

Request files hold one ``<kind-code>:<body>`` line per request, e.g.::

    1:12 + 7
    5:90,3,80,3,-1
    6:

Results are written next to the request file (see ``build_output_path``).
The exit status is 1 when at least one request failed.
"""

from multiprocessing import Process
from pathlib import Path
import time
import argparse
from typing import List, Optional

from pydantic import BaseModel, Field, FilePath, IPvAnyAddress, ValidationError, model_validator

from arithmetic_gpa_server.client.client import ArithmeticClient
from arithmetic_gpa_server.common.logger import logger
from arithmetic_gpa_server.common.operations import OperationResult
from arithmetic_gpa_server.server.server import ArithmeticServer
from arithmetic_gpa_server.server.socket_handler import Transport


class CliArgs(BaseModel):
    """
    Pydantic model used to validate CLI arguments.

    Attributes
    ----------
    command : str
        One of "serve", "send" or "run".
    file_path : FilePath, optional
        Request file, required by "send" and "run".
    host, port, transport
        Server address shared by the server and the client.
    output_file : Path, optional
        File where "serve" logs every reply.
    """

    command: str = Field(..., pattern="^(serve|send|run)$")
    file_path: Optional[FilePath] = None
    host: IPvAnyAddress = Field(default="127.0.0.1")
    port: int = Field(default=9000, ge=1, le=65535)
    transport: Transport = "tcp"
    output_file: Optional[Path] = None

    @model_validator(mode="after")
    def file_required_to_send(self) -> "CliArgs":
        """Ensure "send" and "run" get a request file."""
        if self.command != "serve" and self.file_path is None:
            raise ValueError(f"A request file is required by {self.command!r}")
        return self


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its three sub-commands."""
    parser = argparse.ArgumentParser(
        description="Arithmetic expression and GPA roster server"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the server")
    serve_parser.add_argument("--output-file", help="Append every request and reply to this file")

    send_parser = subparsers.add_parser("send", help="Send a request file to a running server")
    send_parser.add_argument("file_path", help="Request file (.txt, .zip, .tar.xz or .7z)")

    run_parser = subparsers.add_parser("run", help="Start a server and send a request file to it")
    run_parser.add_argument("file_path", help="Request file (.txt, .zip, .tar.xz or .7z)")

    for sub in (serve_parser, send_parser, run_parser):
        sub.add_argument("--host", default="127.0.0.1", help="Server address")
        sub.add_argument("--port", type=int, default=9000, help="Server port")
        sub.add_argument("--transport", choices=["tcp", "udp"], default="tcp", help="Transport protocol")

    return parser


def parse_args(argv: Optional[List[str]] = None) -> CliArgs:
    """
    Parse and validate command-line arguments.

    :param argv: Arguments to parse, sys.argv when None
    :return: Validated CLI arguments
    :rtype: CliArgs
    """
    parser = build_parser()
    args = vars(parser.parse_args(argv))

    try:
        return CliArgs(**{key: value for key, value in args.items() if value is not None})
    except ValidationError as exc:
        parser.error(str(exc))


def build_output_path(input_path: Path) -> Path:
    """
    Construct the results path for a request file.

    The folder is kept and every extension is folded into the name, so
    archives and plain files never share a results file.

    Examples
    --------
    input: resources/requests.7z
    output: resources/requests_7z_results.txt

    :param input_path: Path to the request file
    :return: Path to the results file
    """
    stem = input_path.name[: -len("".join(input_path.suffixes))] if input_path.suffixes else input_path.name
    suffix_safe = "".join(input_path.suffixes).replace(".", "_")
    return input_path.with_name(f"{stem}{suffix_safe}_results.txt")


def serve(args: CliArgs) -> None:
    """Run a server configured from the CLI arguments until it is asked to terminate."""
    ArithmeticServer(
        host=args.host, port=args.port, transport=args.transport, output_file=args.output_file
    ).start()


def send(args: CliArgs) -> List[OperationResult]:
    """Send the request file of the CLI arguments and write its results file."""
    client = ArithmeticClient(host=args.host, port=args.port, transport=args.transport)
    return client.send_file(args.file_path, build_output_path(args.file_path))


def run(args: CliArgs) -> List[OperationResult]:
    """Start a server process, send the request file to it, always stop the server."""
    server_process = Process(target=serve, args=(args,))
    server_process.start()

    # Give the server time to start listening
    time.sleep(1)

    try:
        return send(args)
    finally:
        server_process.terminate()
        server_process.join()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function executed by CI or Docker.

    :return: Process exit status
    :rtype: int
    """
    args = parse_args(argv)

    if args.command == "serve":
        serve(args)
        return 0

    results = send(args) if args.command == "send" else run(args)
    failures = [result for result in results if not result.is_ok]
    if failures:
        logger.warning(f"⚠️ {len(failures)} of {len(results)} requests failed")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
