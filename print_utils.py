# -*- coding: utf-8 -*-
"""
Printing: prerequisite checks, HTML rendering, print submission, cleanup.
"""

import dataclasses
import logging
import os
import shutil
import subprocess

import config_data
from errors import StartupError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PrintTools:
    render: str
    printer: str


def check_prerequisites(config, which_fn=None):
    """
    Locate the render and print commands on the search path.

    Returns:
        PrintTools with absolute command paths

    Raises:
        StartupError: If either command is missing
    """
    which_fn = which_fn or shutil.which
    found = {}
    for name, command in (("render", config.render_command), ("printer", config.print_command)):
        path = which_fn(command)
        if not path:
            raise StartupError(f"Required command {command!r} not found in PATH")
        logger.debug("Using %s for %s", path, name)
        found[name] = path
    return PrintTools(**found)


def run_command(args, expected=config_data.expected_exit_code):
    """
    Run an external command to completion.

    Returns:
        True if it exited with the expected code
    """
    logger.debug("Running %s", args)
    try:
        result = subprocess.run(args, capture_output=True, text=True, check=False)
    except OSError as e:
        logger.error("Running %s failed: %s", args[0], e)
        return False

    if result.returncode != expected:
        logger.error(
            "%s exited with %d: %s",
            os.path.basename(args[0]),
            result.returncode,
            (result.stderr or result.stdout).strip(),
        )
        return False
    return True


def remove_file(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Removing %s failed: %s", path, e)


def _stem(path, suffix):
    return path[: -len(suffix)]


def _has_content(path):
    try:
        return os.path.getsize(path) > 0
    except OSError:
        return False


def Dispatcher(tools, run_fn=None):
    """
    Factory: Create handler that prints every artifact of a run and removes it.

    Handler signature: handler(artifacts) -> list of printed paths

    Plain text is skipped when the same message produced non-empty HTML;
    HTML is rendered to a PDF sibling first. Command failures are logged
    only, and every artifact is removed from disk whether or not it was printed.

    Args:
        tools: PrintTools from check_prerequisites
        run_fn: Optional (args) -> bool, defaults to run_command
    """
    run_fn = run_fn or run_command

    def handler(artifacts):
        printed = []
        printable_html = {
            artifact.path
            for artifact in artifacts
            if artifact.path.endswith(config_data.html_suffix) and _has_content(artifact.path)
        }

        for artifact in artifacts:
            path = artifact.path

            try:
                size = os.path.getsize(path)
            except OSError as e:
                logger.error("Can't access %s: %s", path, e)
                continue

            if size == 0:
                logger.debug("Skipping empty artifact %s", path)
                remove_file(path)
                continue

            if path.endswith(config_data.text_suffix):
                html_sibling = _stem(path, config_data.text_suffix) + config_data.html_suffix
                if html_sibling in printable_html:
                    logger.debug("Skipping %s, HTML version is printed instead", path)
                    remove_file(path)
                    continue

            if path.endswith(config_data.html_suffix):
                pdf_path = _stem(path, config_data.html_suffix) + config_data.pdf_suffix
                rendered = run_fn([tools.render, path, pdf_path])
                remove_file(path)
                if not rendered:
                    logger.error("Rendering %s failed, not printing it", path)
                    remove_file(pdf_path)
                    continue
                path = pdf_path

            if run_fn([tools.printer, path]):
                logger.info("Printed %s", os.path.basename(path))
                printed.append(path)
            else:
                logger.error("Printing %s failed", path)

            remove_file(path)

        return printed

    return handler
