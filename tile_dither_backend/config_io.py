from pathlib import Path

import yaml

from tile_dither_backend.configuration import ConfigurationManager


def load_config_text(path: str) -> str:
    p = Path(path).expanduser()
    if not p.is_file():
        raise FileNotFoundError(f"config not found: {p}")
    return p.read_text(encoding="utf-8")


def save_config_text(path: str, yaml_text: str, check_yaml: bool = True) -> Path:
    if check_yaml:
        # raises yaml.YAMLError for unparsable text, nothing is written then
        yaml.safe_load(yaml_text)
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml_text, encoding="utf-8")
    return p


def default_config_text() -> str:
    return yaml.safe_dump(ConfigurationManager.default_config(), default_flow_style=False, sort_keys=False)
