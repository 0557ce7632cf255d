"""Unit tests for notifyhub.cli — command parsing and execution."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import notifyhub.cli as cli_mod


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ("HOST", "PORT", "NOTIFYHUB_SECRET_KEY", "KAFKA_BROKERS", "ZALO_APP_SECRET"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "notifyhub.yaml"
    path.write_text(
        "secret_key: topsecretvalue\n"
        "server:\n"
        "  host: 127.0.0.1\n"
        "  port: 8088\n"
        "kafka:\n"
        "  brokers: [k1:9092]\n"
        "zalo:\n"
        "  app_secret: zalo-secret\n",
        encoding="utf-8",
    )
    return path


class TestCLIParsing:
    def test_module_has_expected_commands(self):
        assert hasattr(cli_mod, "main")
        assert hasattr(cli_mod, "cmd_run")
        assert hasattr(cli_mod, "cmd_check_config")
        assert hasattr(cli_mod, "cmd_produce")

    def test_no_command_prints_help(self, capsys):
        assert cli_mod.main([]) == 0
        assert "notifyhub" in capsys.readouterr().out


class TestCmdCheckConfig:
    def test_valid_config(self, config_file, capsys):
        assert cli_mod.main(["check-config", "--config", str(config_file)]) == 0
        out = capsys.readouterr().out
        assert "[OK] Configuration valid" in out
        assert "topsecretvalue" not in out
        assert "zalo-secret" not in out
        assert '"port": 8088' in out

    def test_missing_file(self, tmp_path, capsys):
        assert cli_mod.main(["check-config", "--config", str(tmp_path / "missing.yaml")]) == 1
        assert "[ERROR]" in capsys.readouterr().out

    def test_invalid_values(self, tmp_path, capsys):
        path = tmp_path / "notifyhub.yaml"
        path.write_text("environment: qa\n", encoding="utf-8")
        assert cli_mod.main(["check-config", "--config", str(path)]) == 1


class TestCmdRun:
    def test_run_uses_settings(self, config_file):
        app = MagicMock()
        with patch("uvicorn.run") as run, patch("notifyhub.app.create_app", return_value=app) as factory:
            assert cli_mod.main(["run", "--config", str(config_file)]) == 0

        factory.assert_called_once()
        assert factory.call_args.args[0].server.port == 8088
        run.assert_called_once()
        assert run.call_args.args[0] is app
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 8088

    def test_run_flag_overrides(self, config_file):
        with patch("uvicorn.run") as run, patch("notifyhub.app.create_app"):
            cli_mod.main(["run", "--config", str(config_file), "--host", "0.0.0.0", "--port", "9999"])
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        assert run.call_args.kwargs["port"] == 9999

    def test_run_bad_config(self, tmp_path):
        with patch("uvicorn.run") as run:
            assert cli_mod.main(["run", "--config", str(tmp_path / "missing.yaml")]) == 1
        run.assert_not_called()


class TestCmdProduce:
    def test_missing_file(self, tmp_path, capsys):
        assert cli_mod.main(["produce", "task-events", str(tmp_path / "nope.json")]) == 1
        assert "File not found" in capsys.readouterr().out

    def test_invalid_json(self, tmp_path, config_file):
        message = tmp_path / "msg.json"
        message.write_text("{broken", encoding="utf-8")
        assert cli_mod.main(["produce", "task-events", str(message), "--config", str(config_file)]) == 1

    def test_publishes(self, tmp_path, config_file):
        message = tmp_path / "msg.json"
        message.write_text(json.dumps({"event_type": "task.created", "task_id": 1}), encoding="utf-8")

        producer = MagicMock()
        producer.start = AsyncMock()
        producer.stop = AsyncMock()
        producer.send_and_wait = AsyncMock()
        with patch("aiokafka.AIOKafkaProducer", return_value=producer) as producer_cls:
            result = cli_mod.main([
                "produce", "task-events", str(message), "--key", "1", "--config", str(config_file),
            ])

        assert result == 0
        assert producer_cls.call_args.kwargs["bootstrap_servers"] == ["k1:9092"]
        producer.send_and_wait.assert_awaited_once()
        topic = producer.send_and_wait.await_args.args[0]
        kwargs = producer.send_and_wait.await_args.kwargs
        assert topic == "task-events"
        assert json.loads(kwargs["value"]) == {"event_type": "task.created", "task_id": 1}
        assert kwargs["key"] == b"1"
        producer.stop.assert_awaited_once()

    def test_publish_failure(self, tmp_path, config_file, capsys):
        message = tmp_path / "msg.json"
        message.write_text("{}", encoding="utf-8")

        producer = MagicMock()
        producer.start = AsyncMock(side_effect=ConnectionError("no brokers"))
        producer.stop = AsyncMock()
        with patch("aiokafka.AIOKafkaProducer", return_value=producer):
            assert cli_mod.main(["produce", "task-events", str(message), "--config", str(config_file)]) == 1
        assert "Failed to publish" in capsys.readouterr().out
