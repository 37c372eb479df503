"""
Tests for scanner settings and logging setup.
"""
from __future__ import annotations

import logging

import pytest

from docscan.config import ScannerConfig, configure_logging
from docscan.errors import InvalidInputError


def test_defaults():
    cfg = ScannerConfig()
    assert cfg.throttle_ms == 100.0
    assert cfg.min_interval == pytest.approx(0.1)
    assert (cfg.mouse_hit_radius, cfg.touch_hit_radius) == (20.0, 35.0)
    assert cfg.binarize == "otsu"


def test_merged_applies_overrides_and_skips_none():
    cfg = ScannerConfig().merged({"throttle_ms": 250, "binarize": None})
    assert cfg.throttle_ms == 250
    assert cfg.binarize == "otsu"
    base = ScannerConfig()
    assert base.merged({}) is base


def test_merged_rejects_unknown_settings():
    with pytest.raises(InvalidInputError):
        ScannerConfig().merged({"throttle": 10})


@pytest.mark.parametrize("kwargs", [
    {"binarize": "adaptive"},
    {"corner_source": "hull"},
    {"blur_ksize": 4},
    {"throttle_ms": -1},
    {"touch_hit_radius": 0},
])
def test_invalid_values_are_rejected(kwargs):
    with pytest.raises(InvalidInputError):
        ScannerConfig(**kwargs)


def test_from_env_reads_prefixed_variables():
    env = {
        "DOCSCAN_THROTTLE_MS": "50",
        "DOCSCAN_BINARIZE": "canny",
        "DOCSCAN_BLUR_KSIZE": "7",
        "DOCSCAN_BORDER_VALUE": "255, 255, 255",
        "DOCSCAN_MAX_DIMENSION": "none",
        "DOCSCAN_LOG_LEVEL": "debug",
        "DOCSCAN_CANNY_LOW": "  ",
        "OTHER_THROTTLE_MS": "1",
    }
    cfg = ScannerConfig.from_env(env)
    assert cfg.throttle_ms == 50.0
    assert cfg.binarize == "canny"
    assert cfg.blur_ksize == 7
    assert cfg.border_value == (255, 255, 255)
    assert cfg.max_dimension is None
    assert cfg.log_level == "debug"
    assert cfg.canny_low == 50


def test_from_env_custom_prefix():
    cfg = ScannerConfig.from_env({"SCAN_MOUSE_HIT_RADIUS": "12.5"}, prefix="SCAN_")
    assert cfg.mouse_hit_radius == 12.5


@pytest.mark.parametrize("name,value", [
    ("DOCSCAN_THROTTLE_MS", "fast"),
    ("DOCSCAN_BLUR_KSIZE", "5.5"),
    ("DOCSCAN_BORDER_VALUE", "1,2"),
])
def test_from_env_rejects_bad_values(name, value):
    with pytest.raises(InvalidInputError):
        ScannerConfig.from_env({name: value})


def test_configure_logging_sets_level_once():
    logger = configure_logging("debug")
    handlers = list(logger.handlers)
    assert logger.name == "docscan"
    assert logger.level == logging.DEBUG

    configure_logging("warning")
    assert logger.handlers == handlers
    assert logger.level == logging.WARNING
