import yaml
import json
from typing import Dict, Any, Optional
from pathlib import Path
import jsonschema

class ConfigurationManager:
    """
    Manages configuration loading, validation, and defaults
    """
    @classmethod
    def load_config(
        cls,
        config_path: Path,
        schema_path: Optional[Path] = None
    ) -> Dict[str, Any]:
        """
        Load and validate configuration from file

        Args:
            config_path: Path to configuration file
            schema_path: Optional path to JSON schema for validation

        Returns:
            Validated configuration dictionary
        """
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)

        if schema_path and Path(schema_path).exists():
            cls.validate_config(config, Path(schema_path))

        return config

    @classmethod
    def validate_config(
        cls,
        config: Dict[str, Any],
        schema_path: Path
    ) -> bool:
        """
        Validate configuration against JSON schema

        Args:
            config: Configuration dictionary
            schema_path: Path to JSON schema file

        Returns:
            True if valid, raises exception otherwise
        """
        with open(schema_path, 'r') as f:
            schema = json.load(f)

        try:
            jsonschema.validate(instance=config, schema=schema)
            return True
        except jsonschema.exceptions.ValidationError as e:
            raise ValueError(f"Configuration validation failed: {e.message}")

    @classmethod
    def default_config(cls) -> Dict[str, Any]:
        return {
            'project': {
                'name': 'tile_dither_project',
                'version': '1.0.0'
            },
            'tile': {
                'shape': [100, 100],
                'corner': None,
                'count': None
            },
            'quantize': {
                'scale': 1.0
            },
            'parallel': {
                'workers': 1
            },
            'logging': {
                'level': 'INFO',
                'dir': None
            }
        }

    @classmethod
    def generate_default_config(
        cls,
        output_path: Path,
        base_config: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Generate a default configuration file

        Args:
            output_path: Path to save the configuration
            base_config: Optional base configuration to extend

        Returns:
            Generated configuration dictionary
        """
        default_config = cls.default_config()

        if base_config:
            cls._deep_update(default_config, base_config)

        with open(output_path, 'w') as f:
            yaml.dump(default_config, f, default_flow_style=False)

        return default_config

    @staticmethod
    def _deep_update(base_dict: Dict, update_dict: Dict) -> Dict:
        """
        Recursively update nested dictionaries

        Args:
            base_dict: Base dictionary to update
            update_dict: Dictionary with updates

        Returns:
            Updated dictionary
        """
        for key, value in update_dict.items():
            if isinstance(value, dict):
                current = base_dict.get(key)
                base_dict[key] = current if isinstance(current, dict) else {}
                base_dict[key] = ConfigurationManager._deep_update(base_dict[key], value)
            else:
                base_dict[key] = value
        return base_dict

    @classmethod
    def json_schema(cls) -> Dict[str, Any]:
        int_list = {"type": "array", "items": {"type": "integer"}, "minItems": 1}
        return {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "type": "object",
            "properties": {
                "project": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "version": {"type": "string"}
                    },
                    "required": ["name"]
                },
                "tile": {
                    "type": "object",
                    "properties": {
                        "shape": {
                            "type": "array",
                            "items": {"type": "integer", "minimum": 1},
                            "minItems": 1
                        },
                        "corner": {"anyOf": [int_list, {"type": "null"}]},
                        "count": {"anyOf": [int_list, {"type": "null"}]}
                    },
                    "required": ["shape"]
                },
                "quantize": {
                    "type": "object",
                    "properties": {
                        "scale": {"type": "number", "exclusiveMinimum": 0}
                    },
                    "required": ["scale"]
                },
                "parallel": {
                    "type": "object",
                    "properties": {
                        "workers": {"type": "integer", "minimum": 1}
                    }
                },
                "logging": {
                    "type": "object",
                    "properties": {
                        "level": {
                            "type": "string",
                            "enum": ["DEBUG", "INFO", "WARNING", "ERROR"]
                        },
                        "dir": {"type": ["string", "null"]}
                    }
                }
            },
            "required": ["tile", "quantize"]
        }

    @classmethod
    def generate_json_schema(
        cls,
        output_path: Path
    ) -> Dict[str, Any]:
        """
        Write the JSON schema for configuration validation

        Args:
            output_path: Path to save the JSON schema

        Returns:
            Generated JSON schema dictionary
        """
        schema = cls.json_schema()

        with open(output_path, 'w') as f:
            json.dump(schema, f, indent=2)

        return schema

def validate_and_prepare_configuration(
    config_path: Path,
    schema_path: Optional[Path] = None
) -> Dict[str, Any]:
    """
    Load a configuration, validate it and fill in defaults

    Args:
        config_path: Path to configuration file
        schema_path: Optional path to JSON schema

    Returns:
        Validated configuration merged over the defaults
    """
    config = ConfigurationManager.load_config(config_path, schema_path)
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    return ConfigurationManager._deep_update(ConfigurationManager.default_config(), config)
