import json
import logging

import pytest
from fastapi.testclient import TestClient

from inventory_ledger.core import get_logger, setup_logging


@pytest.fixture
def restore_root_handlers():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def read_records(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_structured_lines_go_to_the_log_file(tmp_path, restore_root_handlers):
    log_file = tmp_path / "ledger.log"
    setup_logging("inventory-test", version="9.9.9", enable_console=False,
                  enable_file=True, log_file=str(log_file))

    get_logger("inventory_ledger.tests").info("stock counted", extra={'extra_fields': {'product_id': "A"}})

    record = read_records(log_file)[-1]
    assert record["message"] == "stock counted"
    assert record["service"] == "inventory-test"
    assert record["custom"] == {"product_id": "A"}


def test_log_file_setting_enables_file_output(settings, container, tmp_path, restore_root_handlers):
    from inventory_ledger.main import create_app

    log_file = tmp_path / "service.log"
    settings = settings.model_copy(update={"LOG_FILE": str(log_file)})
    with TestClient(create_app(settings=settings, container=container)) as client:
        assert client.get("/").status_code == 200

    messages = [r["message"] for r in read_records(log_file)]
    assert "Logging initialized" in messages
    assert f"{settings.SERVICE_NAME} started successfully" in messages


def test_no_file_handler_without_log_file(settings, container, restore_root_handlers):
    from inventory_ledger.main import create_app

    with TestClient(create_app(settings=settings, container=container)):
        handlers = logging.getLogger().handlers
        assert not any(isinstance(h, logging.FileHandler) for h in handlers)
