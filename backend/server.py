import socket

import uvicorn

import config


def find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def resolve_port() -> int:
    return config.PORT or find_free_port()


def resolve_host() -> str:
    # In web mode, bind to all interfaces; locally, loopback only
    if config.HOST:
        return config.HOST
    return "0.0.0.0" if config.REQUIRE_AUTH else "127.0.0.1"


def start_server(app, port: int):
    print(f"PORT:{port}", flush=True)
    uvicorn.run(
        app,
        host=resolve_host(),
        port=port,
        log_level=config.LOG_LEVEL.lower(),
    )
