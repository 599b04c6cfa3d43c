from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .client import RelayClient
from .doctor import run_doctor
from .logging_config import get_logger, setup_logging
from .profile import load_profile

log = get_logger("cli")


def cmd_serve(args: argparse.Namespace) -> None:
    from .server.app import RelayContext, create_app

    profile = load_profile(args.profile)
    server_cfg = profile.get("server", {})
    host = args.host or server_cfg.get("host", "127.0.0.1")
    port = args.port or int(server_cfg.get("port", 3000))

    app = create_app(context=RelayContext(profile=profile))
    log.info("serving on %s:%d (profile=%s)", host, port, args.profile or "defaults")

    import uvicorn

    print(f"Server is running on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")


def cmd_generate(args: argparse.Namespace) -> None:
    profile = load_profile(args.profile)
    total_stages = int(profile.get("client", {}).get("total_stages", 4))

    with RelayClient(args.server, total_stages=total_stages) as client:
        state = client.generate(args.prompt)
        if state.error:
            print(f"Error: {state.error}", file=sys.stderr)
            raise SystemExit(1)
        if state.session_id is None or state.image is None:
            print("Generation finished without an image", file=sys.stderr)
            raise SystemExit(1)

        data = client.download(state.session_id)
        log.debug("downloaded artifact %s (%d bytes)", state.session_id, len(data))
        out_path = args.out or Path(f"ai_generated_{state.session_id}.png")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(data)
        print(f"Session: {state.session_id}")
        print(f"Wrote: {out_path} ({len(data)} bytes)")


def cmd_doctor(args: argparse.Namespace) -> None:
    rep = run_doctor(load_profile(args.profile))
    print("imagestream doctor\n")
    for name, data in rep.checks.items():
        print(f"- {name}:")
        for k, v in data.items():
            print(f"    {k}: {v}")
    print("\nOK" if rep.ok else "\nNOT OK (fix missing requirements above)")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="imagestream", description="Streaming image generation relay")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the relay HTTP server.")
    s.add_argument("--profile", type=Path, default=None, help="Path to a YAML profile")
    s.add_argument("--host", type=str, default=None)
    s.add_argument("--port", type=int, default=None)
    s.set_defaults(func=cmd_serve)

    g = sub.add_parser("generate", help="Stream one generation from a running server and save the result.")
    g.add_argument("prompt", type=str)
    g.add_argument("--server", type=str, default="http://127.0.0.1:3000")
    g.add_argument("--out", type=Path, default=None)
    g.add_argument("--profile", type=Path, default=None)
    g.set_defaults(func=cmd_generate)

    d = sub.add_parser("doctor", help="Check ffmpeg/ffprobe and API key configuration.")
    d.add_argument("--profile", type=Path, default=None)
    d.set_defaults(func=cmd_doctor)

    args = parser.parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)
    args.func(args)


if __name__ == "__main__":
    main()
