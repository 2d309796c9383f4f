#!/usr/bin/env python3
import logging
import os
import sys
from arcadebox import create_app, ensure_root, BIND, PORT

def _resolve_data_root() -> str:
    if len(sys.argv) >= 2:
        return os.path.abspath(sys.argv[1])
    return os.path.abspath(os.environ.get("ARCADE_DATA", "arcade-data"))

if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    data_root = _resolve_data_root()
    ensure_root(data_root)
    app = create_app(data_root)
    app.run(host=BIND, port=PORT, debug=False, threaded=True)
