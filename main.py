# Run a service locally:
#   python main.py                 (family_connect on its default port)
#   python main.py family_connect --port 5001
# or directly:
#   uvicorn services.family_connect.main:app --host 0.0.0.0 --port 5000 --reload
import argparse

import uvicorn

from common.constants import SERVICES


def resolve_service(name: str):
    """Return (app import string, default port) for a service name."""
    if name not in SERVICES:
        raise SystemExit(f"Unknown service {name!r}; choose from {', '.join(sorted(SERVICES))}")
    module_path, port = SERVICES[name]
    return f"{module_path}:app", port


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a Family Connect service")
    parser.add_argument("service", nargs="?", default="family_connect")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)

    app_path, default_port = resolve_service(args.service)
    uvicorn.run(app_path, host=args.host, port=args.port or default_port, reload=args.reload)


if __name__ == "__main__":
    main()
