# -*- coding: utf-8 -*-
"""
Settings: YAML file loading, command line handling, credentials, logging setup.
"""

import dataclasses
import getpass
import logging
import os
import sys
import tempfile

import yaml

import config_data
from errors import StartupError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclasses.dataclass(frozen=True)
class MonitorConfig:
    imap_uri: str
    username: str
    password: str = dataclasses.field(repr=False)
    source_folder: str
    destination_folder: str
    tls: bool = True
    debug_level: int = 0
    poll_interval: int = 300
    temp_directory: str = ""
    render_command: str = "wkhtmltopdf"
    print_command: str = "lp"
    bleach_html: bool = True
    html_as_text: bool = False


# settings key -> MonitorConfig field
FIELD_NAMES = {
    "IMAPUri": "imap_uri",
    "Username": "username",
    "Password": "password",
    "SourceFolder": "source_folder",
    "DestinationFolder": "destination_folder",
    "TLS": "tls",
    "DebugLevel": "debug_level",
    "PollInterval": "poll_interval",
    "TempDirectory": "temp_directory",
    "RenderCommand": "render_command",
    "PrintCommand": "print_command",
    "BleachHTML": "bleach_html",
    "HTMLAsText": "html_as_text",
}


def get_credential(env_var, prompt):
    """
    Get credential from environment or prompt.

    Priority:
    1. Environment variable
    2. Interactive prompt (masked input)
    """
    value = os.environ.get(env_var)
    if value:
        return value

    if not sys.stdin.isatty():
        raise StartupError(f"No password configured and {env_var} is not set")

    return getpass.getpass(prompt)


def parse_arguments(argv):
    """
    Interpret positional command line arguments.

    Args:
        argv: Arguments without the program name

    Returns:
        (settings_path, debug_level_override) tuple, override may be None

    Raises:
        StartupError: On a wrong argument count or a non-integer debug level
    """
    match argv:
        case []:
            return config_data.default_settings_file, None
        case [path]:
            return path, None
        case [path, level]:
            try:
                return path, int(level)
            except ValueError:
                raise StartupError(f"Debug level must be an integer, got {level!r}")
        case _:
            raise StartupError("Usage: mailprinter [settings.yaml [debug-level]]")


def _check_type(key, value, expected):
    # bool is an int subclass, keep them apart
    if expected is int and isinstance(value, bool):
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise StartupError(
            f"Setting {key} must be of type {expected.__name__}, got {value!r}"
        )


def parse_settings(document):
    """
    Validate a parsed settings document and build a MonitorConfig.

    Args:
        document: Result of yaml.safe_load on the settings file

    Returns:
        MonitorConfig

    Raises:
        StartupError: On a non-mapping document, nested values,
                      missing required keys, or mistyped values
    """
    if not isinstance(document, dict):
        raise StartupError("Settings file must contain a key/value mapping")

    for key, value in document.items():
        if isinstance(value, (dict, list)):
            raise StartupError(f"Setting {key} must be a single value")
        if key not in FIELD_NAMES:
            logger.warning("Ignoring unknown setting %s", key)

    values = {}

    for key in config_data.required_keys:
        value = document.get(key)
        if value is None or value == "":
            raise StartupError(f"Required setting {key} is missing")
        _check_type(key, value, str)
        values[FIELD_NAMES[key]] = value

    for key, (expected, default) in config_data.optional_keys.items():
        value = document.get(key)
        if value is None:
            values[FIELD_NAMES[key]] = default
            continue
        _check_type(key, value, expected)
        values[FIELD_NAMES[key]] = value

    if values["password"] is None:
        values["password"] = get_credential(config_data.password_env_var, "Password: ")
    if not values["temp_directory"]:
        values["temp_directory"] = tempfile.gettempdir()

    return MonitorConfig(**values)


def load_settings(path):
    """
    Read and validate the settings file.

    Raises:
        StartupError: If the file is missing, unreadable, or malformed
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except FileNotFoundError:
        raise StartupError(f"Settings file {path} does not exist")
    except OSError as e:
        raise StartupError(f"Settings file {path} can't be opened: {e}")
    except yaml.YAMLError as e:
        raise StartupError(f"Settings file {path} can't be read: {e}")

    config = parse_settings(document)
    logger.info(
        "Accessing account %s on %s, moving unread messages from %s to %s",
        config.username,
        config.imap_uri,
        config.source_folder,
        config.destination_folder,
    )
    return config


def load_config(argv):
    """Resolve the command line into a MonitorConfig, applying any debug level override."""
    path, debug_level = parse_arguments(argv)
    config = load_settings(path)
    if debug_level is not None:
        config = dataclasses.replace(config, debug_level=debug_level)
    return config


def configure_logging(debug_level=0):
    """Send log records to stderr; DebugLevel >= 1 enables tracing output."""
    root = logging.getLogger()
    root.handlers = []
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug_level >= 1 else logging.INFO)
