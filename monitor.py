# -*- coding: utf-8 -*-
"""
Run loop: search, fetch, extract, print, relocate and flag, once or on a timer.
"""

import logging
import sys
import time

import config_utils
import email_utils
import fetch_utils
import handlers
import imap_utils
import print_utils
from errors import ExtractError, FlagError, RelocateError, SessionError, StartupError

logger = logging.getLogger(__name__)


def discard_artifacts(artifacts):
    for artifact in artifacts:
        print_utils.remove_file(artifact.path)
    artifacts.clear()


def run_cycle(session, config, tools, run_fn=None, stem_fn=None):
    """
    Process the unread messages of the source folder once.

    Moving and flagging are best effort: a failure in either is logged and
    nothing is rolled back, so messages can end up moved but unseen.

    Args:
        session: Connected MailSession
        config: MonitorConfig
        tools: PrintTools
        run_fn: Optional command runner passed to the dispatcher
        stem_fn: Optional artifact stem generator passed to the extractor

    Returns:
        Number of messages extracted and handed to the printer

    Raises:
        SessionError: If a needed reconnect fails
        ExtractError: If an artifact can't be written; nothing is moved then
            and the artifacts written so far are removed
    """
    session.ensure_connected()
    ids = imap_utils.find_unread(session, config.source_folder)
    if not ids:
        return 0

    artifacts = email_utils.ArtifactSet()
    extract = email_utils.Extractor(config, artifacts, stem_fn=stem_fn)
    processed = imap_utils.IdentifierSet(config.source_folder)

    logger.debug("Downloading and printing %d messages", len(ids))
    stream = fetch_utils.fetch_all(session, imap_utils.IdentifierSet(config.source_folder, ids))
    try:
        try:
            for envelope in stream:
                extract(envelope)
                processed.add(envelope.seq)
        finally:
            stream.drain()
            fetch_error = stream.wait()
    except BaseException:
        discard_artifacts(artifacts)
        raise

    if fetch_error is not None:
        logger.error("Fetching messages failed: %s", fetch_error)
        if isinstance(fetch_error, imap_utils.CONNECTION_LOST):
            session.mark_disconnected()
    logger.info("Fetching done")

    print_utils.Dispatcher(tools, run_fn=run_fn)(artifacts)
    artifacts.clear()

    session.ensure_connected()
    try:
        handlers.relocate(session, processed, config.destination_folder)
    except RelocateError as e:
        logger.error("Moving item: %s", e)

    session.ensure_connected()
    try:
        handlers.mark_seen(session, config.destination_folder)
    except FlagError as e:
        logger.error("Marking read failed: %s", e)
    logger.info("Marking read done")

    return len(processed)


def run_once(config, tools, session=None, run_fn=None):
    """
    Connect, run a single cycle, and log out.

    Raises:
        SessionError, ExtractError
    """
    session = session or imap_utils.MailSession(config)
    session.connect()
    try:
        return run_cycle(session, config, tools, run_fn=run_fn)
    finally:
        session.logout()


def run_forever(config, tools, session=None, run_fn=None, sleep_fn=time.sleep):
    """
    Run a cycle every config.poll_interval seconds on one long-lived session.

    The session is reconnected lazily when a cycle finds it dead; a failed
    cycle is logged and the next one starts after the regular interval.
    """
    session = session or imap_utils.MailSession(config)
    try:
        while True:
            try:
                run_cycle(session, config, tools, run_fn=run_fn)
            except (SessionError, ExtractError) as e:
                logger.error("Cycle failed: %s", e)
            except Exception as e:
                logger.exception("Unexpected error: %s", e)
            sleep_fn(config.poll_interval)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    finally:
        session.logout()


def main(argv=None, loop=False):
    """
    Command line entry point.

    Returns:
        Exit status: 0 on success, 1 on a failed run, 2 on startup errors
    """
    argv = sys.argv[1:] if argv is None else argv
    config_utils.configure_logging()

    try:
        config = config_utils.load_config(argv)
        tools = print_utils.check_prerequisites(config)
    except StartupError as e:
        logger.error("%s", e)
        return 2

    config_utils.configure_logging(config.debug_level)

    if loop:
        run_forever(config, tools)
        return 0

    try:
        run_once(config, tools)
    except (SessionError, ExtractError) as e:
        logger.error("%s", e)
        return 1
    return 0


def main_loop(argv=None):
    return main(argv, loop=True)
