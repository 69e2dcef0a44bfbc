"""
Local launcher: ``python -m tollvault [--headless] [--host HOST] [--port PORT]``
"""
import argparse
import threading
import webbrowser

import uvicorn

from tollvault.core.config import settings

BROWSER_DELAY_SECONDS = 1.5


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tollvault", description="Toll-collection analytics dashboard")
    parser.add_argument("--headless", action="store_true", help="do not open the dashboard in a browser")
    parser.add_argument("--host", default=settings.HOST)
    parser.add_argument("--port", type=int, default=settings.PORT)
    return parser.parse_args(argv)


def dashboard_url(host: str, port: int) -> str:
    if host in ("0.0.0.0", "::", ""):
        host = "127.0.0.1"
    return f"http://{host}:{port}/"


def main(argv=None) -> None:
    args = parse_args(argv)

    if not args.headless:
        timer = threading.Timer(BROWSER_DELAY_SECONDS, webbrowser.open, args=(dashboard_url(args.host, args.port),))
        timer.daemon = True
        timer.start()

    uvicorn.run("tollvault.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
