import sys
import logging
import argparse

from smartmark import create_app
from smartmark.logging_config import setup_logging

log = logging.getLogger('werkzeug')
log.disabled = True
cli = sys.modules['flask.cli']
cli.show_server_banner = lambda *x: None


def main() -> None:
    p = argparse.ArgumentParser(prog="smartmark")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8072)
    p.add_argument("--debug", action="store_true")
    args = p.parse_args()

    setup_logging(debug=args.debug)
    app = create_app()
    print(f"SmartMark starting on http://{args.host}:{args.port}", flush=True)
    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
