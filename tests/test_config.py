from pathlib import Path

import pytest
import yaml

from selfiematch.config import (
    ACCURATE_DETECTOR,
    AppConfig,
    MatchSettings,
    config_from_dict,
    load_config,
)

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_defaults():
    config = load_config(None)
    assert config.matching.match_threshold == 50.0
    assert config.matching.batch_size == 3
    assert config.matching.enable_angle_matching is True
    assert config.matching.detection_method == "both"
    assert config.validation.max_upload_bytes == 10 * 1024 * 1024
    assert config.detector_options()["accurate"] == ACCURATE_DETECTOR
    assert config.provider.model_name == "buffalo_l"


def test_shipped_config_matches_defaults():
    assert load_config(REPO_ROOT / "configs" / "matching.yaml") == AppConfig()


def test_yaml_overrides(tmp_path):
    path = tmp_path / "matching.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "matching": {"match_threshold": 65, "detection_method": "tiny"},
                "validation": {"min_contrast": 10},
                "detectors": {"fast": {"min_confidence": 0.3, "variant": "accurate"}},
                "provider": {"onnx_providers": "CPUExecutionProvider"},
            }
        ),
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.matching.match_threshold == 65.0
    assert config.matching.detection_method == "tiny"
    assert config.validation.min_contrast == 10
    assert config.fast_detector.min_confidence == 0.3
    assert config.fast_detector.variant == "fast"
    assert config.provider.onnx_providers == ("CPUExecutionProvider",)


def test_unknown_keys_are_ignored():
    config = config_from_dict({"matching": {"batch_size": 4, "turbo": True}})
    assert config.matching.batch_size == 4


def test_ssd_is_an_alias_for_accurate():
    assert MatchSettings(detection_method="SSD").detection_method == "accurate"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"match_threshold": 101},
        {"match_threshold": -1},
        {"batch_size": 0},
        {"batch_delay_s": -0.1},
        {"detect_timeout_s": 0},
        {"detection_method": "mtcnn"},
    ],
)
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ValueError):
        MatchSettings(**kwargs)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_batch_size_from_yaml_string_is_an_int():
    config = config_from_dict({"matching": {"batch_size": "3"}})
    assert config.matching.batch_size == 3
    assert isinstance(config.matching.batch_size, int)
