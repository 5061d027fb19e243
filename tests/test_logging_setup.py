import logging

from shared.logging.logging_setup import ColoredFormatter, ColorLogger, CustomFormatter, build_logging_config


def make_record(level: int, msg: str, args: tuple = (), color: str | None = None) -> logging.LogRecord:
    record = logging.LogRecord("tests", level, __file__, 1, msg, args, None)
    if color:
        record.color = color
    return record


def test_levels_are_prefixed():
    formatter = CustomFormatter("Asia/Seoul", fmt="%(message)s")

    assert formatter.format(make_record(logging.INFO, "synced %d file(s)", (3,))) == "synced 3 file(s)"
    assert formatter.format(make_record(logging.WARNING, "slow")) == "⚠️ slow"
    assert formatter.format(make_record(logging.CRITICAL, "down")) == "⛔ down"


def test_mismatched_arguments_keep_the_template():
    formatter = CustomFormatter("Asia/Seoul", fmt="%(message)s")

    assert formatter.format(make_record(logging.INFO, "chat %s of %s", ("42",))) == "chat %s of %s"


def test_console_colors():
    formatter = ColoredFormatter("Asia/Seoul", fmt="%(message)s")

    assert formatter.format(make_record(logging.INFO, "done", color="green")) == "\033[32mdone\033[0m"
    assert formatter.format(make_record(logging.INFO, "done", color="no-such-color")) == "done"


def test_color_logger_passes_color_as_extra(caplog):
    logger = ColorLogger(logging.getLogger("tests.color"))

    with caplog.at_level(logging.INFO, logger="tests.color"):
        logger.info("sync %s finished", "job-1", color="green")
        logger.info("plain")

    assert caplog.records[0].getMessage() == "sync job-1 finished"
    assert caplog.records[0].color == "green"
    assert not hasattr(caplog.records[1], "color")


def test_logging_config(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_FILE", "bridge.log")
    monkeypatch.setenv("LOG_BACKUP_COUNT", "2")

    config = build_logging_config(str(tmp_path), "UTC", logging.DEBUG)

    file_handler = config["handlers"]["file"]
    assert file_handler["filename"] == str(tmp_path / "bridge.log")
    assert file_handler["backupCount"] == 2
    assert config["root"]["level"] == logging.DEBUG
