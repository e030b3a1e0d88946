# tests/test_config.py

from __future__ import annotations

import logging

import pytest

from keyimage.config import PADDING_ENV, UPLOAD_URL_ENV, AnnotationStyle, KeyImageConfig
from keyimage.utils.logging import configure_logging


def test_defaults() -> None:
    cfg = KeyImageConfig()
    assert cfg.padding_px == 5
    assert cfg.background_color == "#000000"
    assert cfg.export_color == "#ffffff"
    assert (cfg.leader_lines_before, cfg.leader_lines_after) == (3, 1)


def test_dict_roundtrip_keeps_nested_style() -> None:
    cfg = KeyImageConfig(padding_px=12, annotation_style=AnnotationStyle(line_width=3.0))
    data = cfg.to_dict()
    assert data["annotation_style"]["line_width"] == 3.0

    data["unknown_key"] = "ignored"
    back = KeyImageConfig.from_dict(data)
    assert back == cfg
    assert isinstance(back.annotation_style, AnnotationStyle)


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(UPLOAD_URL_ENV, "https://pacs.example/keyimages")
    monkeypatch.setenv(PADDING_ENV, "8")
    cfg = KeyImageConfig.from_env()
    assert cfg.upload_url == "https://pacs.example/keyimages"
    assert cfg.padding_px == 8

    assert KeyImageConfig.from_env(padding_px=2).padding_px == 2


def test_from_env_ignores_bad_padding(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.delenv(UPLOAD_URL_ENV, raising=False)
    monkeypatch.setenv(PADDING_ENV, "wide")
    with caplog.at_level(logging.WARNING, logger="keyimage"):
        cfg = KeyImageConfig.from_env()
    assert cfg.padding_px == 5
    assert PADDING_ENV in caplog.text


def test_configure_logging_reads_env_level(monkeypatch: pytest.MonkeyPatch) -> None:
    pkg_logger = logging.getLogger("keyimage")
    saved_level, saved_handlers = pkg_logger.level, pkg_logger.handlers[:]
    try:
        monkeypatch.setenv("KEYIMAGE_LOG_LEVEL", "DEBUG")
        configure_logging()
        assert pkg_logger.level == logging.DEBUG
        configure_logging(level="WARNING")
        assert pkg_logger.level == logging.WARNING
        # a second call does not stack stderr handlers
        assert len(pkg_logger.handlers) == len(saved_handlers) + 1
    finally:
        pkg_logger.setLevel(saved_level)
        pkg_logger.handlers[:] = saved_handlers
