# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

"""Request/response wrapper that runs inside a sandbox.

This file is copied verbatim into every sandbox bundle next to
``artifact.py`` and must only depend on the standard library.

Endpoints:
    GET /health  -> 200 {"status": "ok"}
    POST /run    -> 200 <result JSON>, or 500 {"error", "stack", "details"}

The artifact is compiled once at startup, so a syntax error makes the
process exit with the traceback on stderr before it ever answers /health.
"""

import argparse
import builtins
import copy
import json
import math
import sys
import traceback
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from types import CodeType
from typing import Any

INPUT_VARIABLE = "input"
RESULT_VARIABLE = "result"

_ALLOWED_BUILTINS = (
    "abs", "all", "any", "bin", "bool", "chr", "dict", "divmod", "enumerate", "filter",
    "float", "format", "frozenset", "hex", "int", "isinstance", "len", "list", "map", "max",
    "min", "oct", "ord", "pow", "range", "repr", "reversed", "round", "set", "slice",
    "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "Exception", "IndexError", "KeyError", "TypeError", "ValueError",
    "ZeroDivisionError",
)  # fmt: skip

SAFE_BUILTINS = {name: getattr(builtins, name) for name in _ALLOWED_BUILTINS}


class ArtifactError(Exception):
    """The artifact ran but did not produce a usable result."""


def load_artifact(path: Path) -> CodeType:
    source = path.read_text(encoding="utf-8")
    return compile(source, "artifact.py", "exec")


def unwrap(body: Any) -> Any:
    """Accept both ``{...fields}`` and ``{"input": {...}}`` request bodies."""
    if isinstance(body, dict) and set(body) == {INPUT_VARIABLE} and isinstance(body[INPUT_VARIABLE], dict):
        return body[INPUT_VARIABLE]
    return body


def evaluate(code: CodeType, payload: Any) -> Any:
    """Execute the artifact in a fresh scope and return what it bound to ``result``."""
    scope: dict[str, Any] = {
        "__builtins__": SAFE_BUILTINS,
        "math": math,
        INPUT_VARIABLE: copy.deepcopy(payload),
    }
    exec(code, scope)  # noqa: S102
    if RESULT_VARIABLE not in scope:
        raise ArtifactError(f"artifact did not bind '{RESULT_VARIABLE}'")
    return scope[RESULT_VARIABLE]


def make_handler(code: CodeType) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def _send(self, status: int, body: Any) -> None:
            data = json.dumps(body).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def do_GET(self) -> None:  # noqa: N802
            if self.path == "/health":
                self._send(200, {"status": "ok"})
            else:
                self._send(404, {"error": f"no route {self.path}"})

        def do_POST(self) -> None:  # noqa: N802
            if self.path != "/run":
                self._send(404, {"error": f"no route {self.path}"})
                return

            length = int(self.headers.get("Content-Length") or 0)
            try:
                body = json.loads(self.rfile.read(length) or b"{}")
            except ValueError as e:
                self._send(400, {"error": f"invalid JSON body: {e}"})
                return

            payload = unwrap(body)
            try:
                result = evaluate(code, payload)
                encoded = json.loads(json.dumps(result))
            except Exception as e:
                self._send(
                    500,
                    {
                        "error": f"{type(e).__name__}: {e}",
                        "stack": traceback.format_exc(),
                        "details": {"type": type(e).__name__, "input": payload},
                    },
                )
                return
            self._send(200, encoded)

        def log_message(self, format: str, *args: Any) -> None:
            sys.stderr.write("%s - %s\n" % (self.address_string(), format % args))

    return Handler


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Serve a generated artifact over HTTP.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--artifact", type=Path, default=Path(__file__).with_name("artifact.py"))
    args = parser.parse_args(argv)

    code = load_artifact(args.artifact)
    server = ThreadingHTTPServer((args.host, args.port), make_handler(code))
    sys.stderr.write(f"artifact loaded, listening on {args.host}:{args.port}\n")
    sys.stderr.flush()
    server.serve_forever()


if __name__ == "__main__":
    main()
