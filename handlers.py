# -*- coding: utf-8 -*-
"""
Mailbox handlers: IMAP store operations used to relocate and flag messages.
All handlers are factory functions that return configured handler functions.
Handler signature: handler(connection, identifiers) -> (res, data)
"""

import imaplib
import logging

import config_data
from errors import FlagError, RelocateError, SearchError
from imap_utils import CONNECTION_LOST, IdentifierSet, quote_folder

logger = logging.getLogger(__name__)

imaplib.Commands.setdefault("MOVE", ("SELECTED",))


def Expunge():
    """Factory: Create handler that permanently removes deleted messages"""

    def handler(connection, identifiers):
        return connection.expunge()

    return handler


def Delete():
    """Factory: Create handler that marks messages as deleted"""

    def handler(connection, identifiers):
        return connection.store(str(identifiers), "+FLAGS", f"({config_data.deleted_flag})")

    return handler


def Copy(folder):
    """Factory: Create handler that copies messages to folder"""

    def handler(connection, identifiers):
        return connection.copy(str(identifiers), quote_folder(folder))

    return handler


def Move(folder):
    """
    Factory: Create handler that moves messages to folder.
    Uses MOVE (RFC 6851) when the server has it, otherwise copy + delete + expunge.
    """
    copy_handler = Copy(folder)
    delete_handler = Delete()
    expunge_handler = Expunge()

    def handler(connection, identifiers):
        if "MOVE" in connection.capabilities:
            return connection._simple_command("MOVE", str(identifiers), quote_folder(folder))

        res, data = copy_handler(connection, identifiers)
        if res == "OK":
            res, data = delete_handler(connection, identifiers)
        if res == "OK":
            res, data = expunge_handler(connection, identifiers)
        return res, data

    return handler


def SetFlags(flag):
    """Factory: Create handler that sets IMAP flags on messages"""

    def handler(connection, identifiers):
        return connection.store(str(identifiers), "+FLAGS", f"({flag})")

    return handler


def relocate(session, identifiers, destination):
    """
    Move processed messages out of their source folder.

    The source folder is re-selected read-write first, so the sequence
    numbers are always applied in the folder they were found in.

    Raises:
        RelocateError: If selecting or moving fails; nothing is rolled back
    """
    if not identifiers:
        return

    logger.debug("Moving %s from %s to %s", identifiers, identifiers.folder, destination)
    try:
        session.select(identifiers.folder, readonly=False)
        res, data = Move(destination)(session.connection, identifiers)
    except SearchError as e:
        raise RelocateError(str(e))
    except CONNECTION_LOST as e:
        session.mark_disconnected()
        raise RelocateError(f"Connection lost while moving messages: {e}")
    except imaplib.IMAP4.error as e:
        raise RelocateError(f"Moving messages to {destination} failed: {e}")

    if res != "OK":
        raise RelocateError(f"Moving messages to {destination} failed: {data}")
    logger.info("Moved %d messages to %s", len(identifiers), destination)


def mark_seen(session, folder):
    """
    Flag every unseen message in folder as seen.

    Returns:
        Number of messages flagged

    Raises:
        FlagError: If selecting, searching or storing fails
    """
    logger.debug("Marking messages read in folder: %s", folder)
    try:
        session.select(folder, readonly=False)
        ids = session.search_unseen()
        if not ids:
            logger.info("No unread messages found in %s", folder)
            return 0

        identifiers = IdentifierSet(folder, ids)
        logger.debug("Marking %d messages read in %s", len(identifiers), folder)
        res, data = SetFlags(config_data.seen_flag)(session.connection, identifiers)
    except SearchError as e:
        raise FlagError(f"Getting unread messages: {e}")
    except CONNECTION_LOST as e:
        session.mark_disconnected()
        raise FlagError(f"Connection lost while marking messages read: {e}")
    except imaplib.IMAP4.error as e:
        raise FlagError(f"Marking as read: {e}")

    if res != "OK":
        raise FlagError(f"Marking as read: {data}")
    logger.info("Marked %d messages read in %s", len(identifiers), folder)
    return len(identifiers)
