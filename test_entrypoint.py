import pytest

import main

pytestmark = pytest.mark.unit


def test_resolve_known_service():
    assert main.resolve_service("family_connect") == ("services.family_connect.main:app", 5000)


def test_resolve_unknown_service_exits():
    with pytest.raises(SystemExit):
        main.resolve_service("sos")


def test_main_runs_uvicorn_with_default_port(mocker):
    run = mocker.patch("main.uvicorn.run")

    main.main([])

    run.assert_called_once_with(
        "services.family_connect.main:app", host="0.0.0.0", port=5000, reload=False
    )
