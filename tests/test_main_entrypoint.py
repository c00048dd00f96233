from __future__ import annotations

from fastapi import FastAPI


def test_main_exposes_server_app() -> None:
    import main
    import server

    assert main.app is server.app
    assert isinstance(main.app, FastAPI)
    assert main.__all__ == ["app"]
