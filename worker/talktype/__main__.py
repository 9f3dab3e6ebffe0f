from __future__ import annotations

import os

import uvicorn


def main() -> None:
    host = os.getenv("TALKTYPE_HOST", "127.0.0.1")
    port = int(os.getenv("TALKTYPE_PORT", "8765"))
    uvicorn.run("talktype.app:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    main()
